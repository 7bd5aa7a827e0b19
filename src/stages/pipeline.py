"""
Staged Extraction Pipeline
==========================
Runs the stages in fixed order and keeps the best result.

    exact → flexible → heuristic → fallback

After each stage:
  - a result with confidence ≥ threshold that beats the best so far
    becomes the current best
  - a result with confidence ≥ 0.8 ends the run

If nothing met the threshold and fallback has not run (skipped because the
time budget ran out), fallback runs unconditionally.  A fallback result is
flagged with fallback_used=True.  The pipeline never raises: a failing
stage is logged, recorded in the diagnostics and contributes nothing.

Usage
-----
    pipeline = StagedPipeline()
    result   = pipeline.run(context)
"""

from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from extraction_errors import StageError
from receipt_models import ParseResult, ReceiptAnalysisContext
from stages.base_stage import BaseStage
from stages.fallback_stage import FallbackStage
from stages.heuristic_stage import HeuristicStage
from stages.pattern_stages import ExactMatchStage, FlexibleMatchStage


DiagnosticsSink = Callable[[Dict[str, Any]], None]


class StagedPipeline:
    """
    Ordered stage runner with early exit, time budget and forced fallback.
    """

    def __init__(
        self,
        stages: Optional[List[BaseStage]] = None,
        early_exit_confidence: float = 0.8,
        diagnostics_sink: Optional[DiagnosticsSink] = None,
    ):
        self.stages = stages if stages is not None else [
            ExactMatchStage(),
            FlexibleMatchStage(),
            HeuristicStage(),
            FallbackStage(),
        ]
        self.early_exit_confidence = early_exit_confidence
        self.diagnostics_sink = diagnostics_sink

    @classmethod
    def from_config(cls, config: Dict[str, Any], diagnostics_sink: Optional[DiagnosticsSink] = None) -> "StagedPipeline":
        """Build the default stage list from the `pipeline` config section."""
        heuristic = config.get("heuristic", {})
        return cls(
            stages=[
                ExactMatchStage(min_confidence=config.get("exact_min_confidence", 0.8)),
                FlexibleMatchStage(
                    min_confidence=config.get("flexible_min_confidence", 0.5),
                    max_confidence=config.get("exact_min_confidence", 0.8),
                    item_scale=config.get("flexible_scale", 0.9),
                ),
                HeuristicStage(
                    window=heuristic.get("window", 2),
                    min_score=heuristic.get("min_score", 0.5),
                    weight=heuristic.get("weight", 0.75),
                ),
                FallbackStage(confidence=config.get("fallback_confidence", 0.3)),
            ],
            early_exit_confidence=config.get("early_exit_confidence", 0.8),
            diagnostics_sink=diagnostics_sink,
        )

    # ── Run ───────────────────────────────────────────────────────────────────

    def run(self, context: ReceiptAnalysisContext) -> ParseResult:
        options = context.options
        threshold = options.confidence_threshold

        best: Optional[ParseResult] = None
        fallback_result: Optional[ParseResult] = None
        fallback_ran = False
        attempted: List[str] = []
        diagnostics: List[Dict[str, Any]] = []

        for stage in self.stages:
            if stage.is_fallback and not options.enable_fallback:
                self._record(diagnostics, attempted, stage.name, skipped="disabled")
                continue
            if context.budget_exhausted():
                self._record(diagnostics, attempted, stage.name, skipped="time budget exhausted")
                continue

            result = self._run_stage(stage, context, diagnostics, attempted)
            if stage.is_fallback:
                fallback_ran = True
                fallback_result = result
            if result is None:
                continue

            if result.confidence >= threshold and (best is None or result.confidence > best.confidence):
                best = result
            if best is result and result.confidence >= self.early_exit_confidence:
                logger.debug(f"[StagedPipeline] early exit after '{stage.name}'")
                break

        if best is None and options.enable_fallback:
            if not fallback_ran:
                forced = self._fallback_stage()
                logger.info("[StagedPipeline] No stage met the threshold, forcing fallback")
                fallback_result = self._run_stage(forced, context, diagnostics, attempted)
            best = fallback_result

        return self._finish(best, context, attempted, diagnostics)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _run_stage(
        self,
        stage: BaseStage,
        context: ReceiptAnalysisContext,
        diagnostics: List[Dict[str, Any]],
        attempted: List[str],
    ) -> Optional[ParseResult]:
        try:
            result = stage.run(context)
        except Exception as e:
            err = StageError(stage.name, e)
            logger.warning(f"[StagedPipeline] {err}")
            self._record(diagnostics, attempted, stage.name, error=str(e))
            return None

        for rule_id in result.metadata.get("patterns_attempted", []):
            if rule_id not in attempted:
                attempted.append(rule_id)
        self._record(
            diagnostics, attempted, stage.name,
            items_found=len(result.items),
            confidence=result.confidence,
            elapsed_ms=result.metadata.get("elapsed_ms", 0.0),
        )
        return result

    def _fallback_stage(self) -> BaseStage:
        for stage in self.stages:
            if stage.is_fallback:
                return stage
        return FallbackStage()

    def _record(
        self,
        diagnostics: List[Dict[str, Any]],
        attempted: List[str],
        stage: str,
        skipped: Optional[str] = None,
        error: Optional[str] = None,
        items_found: int = 0,
        confidence: float = 0.0,
        elapsed_ms: float = 0.0,
    ):
        event = {
            "stage": stage,
            "attempted": skipped is None,
            "items_found": items_found,
            "confidence": round(confidence, 4),
            "elapsed_ms": elapsed_ms,
        }
        if skipped is not None:
            event["skipped_reason"] = skipped
            attempted.append(f"{stage}:skipped")
        if error is not None:
            event["error"] = error
        diagnostics.append(event)
        if self.diagnostics_sink is not None:
            try:
                self.diagnostics_sink(event)
            except Exception as err:
                logger.warning(f"[StagedPipeline] diagnostics sink failed on '{stage}': {err}")

    def _finish(
        self,
        best: Optional[ParseResult],
        context: ReceiptAnalysisContext,
        attempted: List[str],
        diagnostics: List[Dict[str, Any]],
    ) -> ParseResult:
        metadata = {
            "processing_time_ms": round(context.elapsed_ms(), 2),
            "patterns_attempted": attempted,
            "fallback_used": False,
            "store_type": context.detected_store,
            "pattern_used": None,
            "stages": diagnostics,
        }

        if best is None:
            logger.info("[StagedPipeline] no result met the threshold")
            return ParseResult.empty(**metadata)

        metadata["fallback_used"] = best.metadata.get("stage") == "fallback"
        metadata["pattern_used"] = best.pattern_id
        metadata["stage"] = best.metadata.get("stage")
        return ParseResult(
            pattern_id=best.pattern_id,
            confidence=best.confidence,
            items=best.items,
            metadata=metadata,
        )
