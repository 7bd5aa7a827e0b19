"""
Stages package - the ordered extraction strategies and the pipeline that runs them.

Each stage handles one matching strategy.  All shared plumbing (timing,
stage confidence, result packaging) lives in BaseStage.

Usage (via pipeline)
--------------------
from stages import StagedPipeline
pipeline = StagedPipeline()
result   = pipeline.run(context)
"""

from stages.pipeline import StagedPipeline

__all__ = ["StagedPipeline"]
