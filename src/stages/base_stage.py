"""
Base Stage
==========
Contains the shared logic of every pipeline stage:
  - timing and logging of a stage run
  - stage confidence (mean item confidence)
  - packaging the items into a ParseResult

Subclasses override ONLY _items() to implement their matching strategy.
"""

import time
from collections import Counter
from typing import List, Tuple

from loguru import logger

from item_scoring import mean
from receipt_models import ExtractedItem, ParseResult, ReceiptAnalysisContext


class BaseStage:
    """
    Abstract base class.  Subclasses implement _items().

    Call run(context) → returns a ParseResult for this stage alone.
    """

    name = "base"
    is_fallback = False

    # ── Public entry point ────────────────────────────────────────────────────

    def run(self, context: ReceiptAnalysisContext) -> ParseResult:
        started = time.perf_counter()

        if not context.lines:
            items, attempted = [], []
        else:
            items, attempted = self._items(context)
        items = sorted(items, key=lambda i: i.first_line)

        confidence = self._confidence(items)
        elapsed_ms = (time.perf_counter() - started) * 1000.0

        logger.debug(
            f"[{self.__class__.__name__}] items={len(items)} "
            f"confidence={confidence:.2f} elapsed={elapsed_ms:.1f}ms"
        )
        return ParseResult(
            pattern_id=self._pattern_id(items),
            confidence=confidence,
            items=items,
            metadata={
                "stage": self.name,
                "patterns_attempted": attempted,
                "elapsed_ms": round(elapsed_ms, 2),
            },
        )

    # ── Must be overridden ────────────────────────────────────────────────────

    def _items(self, context: ReceiptAnalysisContext) -> Tuple[List[ExtractedItem], List[str]]:
        """Return (items, ids of the rules attempted)."""
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement _items()"
        )

    # ── Shared helpers ────────────────────────────────────────────────────────

    def _confidence(self, items: List[ExtractedItem]) -> float:
        return round(mean(i.confidence for i in items), 4)

    def _pattern_id(self, items: List[ExtractedItem]) -> str:
        """Rule that produced most of the items, else the stage name."""
        rule_ids = Counter(i.metadata.get("rule_id") for i in items if i.metadata.get("rule_id"))
        if rule_ids:
            return rule_ids.most_common(1)[0][0]
        return self.name
