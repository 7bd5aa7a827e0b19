"""
Extraction Errors
=================
Exception taxonomy for the line-item extraction engine.

Only ConfigError ever reaches a caller (catalog add/update/import).
Everything else is raised inside a component and absorbed by the layer
above it:

  StageError            caught by StagedPipeline, stage contributes nothing
  ExternalServiceError  caught by HybridMerger, pattern engine takes over
  ValidationFailure     caught by ExtractionService, item is dropped
"""

from typing import Any, List, Optional


class ExtractionError(Exception):
    """Base class for every error raised by the extraction engine."""


class ConfigError(ExtractionError):
    """A pattern definition failed validation."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}" if field else message)


class StageError(ExtractionError):
    """A pipeline stage raised while processing a receipt."""

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"stage '{stage}' failed: {cause}")


class ExternalServiceError(ExtractionError):
    """External document service failed, timed out or returned garbage."""


class ValidationFailure(ExtractionError):
    """An extracted item failed one or more validation rules."""

    def __init__(self, item: Any, issues: List[Any]):
        self.item = item
        self.issues = issues
        super().__init__(
            f"item {getattr(item, 'name', item)!r} rejected: "
            + "; ".join(getattr(i, "message", str(i)) for i in issues)
        )
