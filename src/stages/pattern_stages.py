"""
Catalog Pattern Stages
======================
Exact and flexible stages apply catalog rules, selected by rule confidence:

  ExactMatchStage     rules with confidence ≥ 0.8
  FlexibleMatchStage  rules with confidence in [0.5, 0.8); item confidence × 0.9

Within a stage, multi-line sub-patterns run first, then context-aware, then
single-line, each group in catalog (priority) order.  A line used by one
match is not reused by a later one in the same stage.
"""

from typing import List, Optional, Set, Tuple

from patterns.matcher import PatternMatcher
from receipt_models import ExtractedItem, ReceiptAnalysisContext
from stages.base_stage import BaseStage


_TYPE_ORDER = {"multi-line": 0, "context-aware": 1, "single-line": 2}


class PatternStage(BaseStage):
    """Applies the catalog rules whose confidence falls in [min, max)."""

    name = "pattern"

    def __init__(
        self,
        min_confidence: float,
        max_confidence: Optional[float] = None,
        item_scale: float = 1.0,
        matcher: Optional[PatternMatcher] = None,
    ):
        self.min_confidence = min_confidence
        self.max_confidence = max_confidence
        self.item_scale = item_scale
        self.matcher = matcher or PatternMatcher()

    def _in_band(self, confidence: float) -> bool:
        if confidence < self.min_confidence:
            return False
        return self.max_confidence is None or confidence < self.max_confidence

    def _items(self, context: ReceiptAnalysisContext) -> Tuple[List[ExtractedItem], List[str]]:
        rules = [r for r in context.patterns if self._in_band(r.confidence)]
        pairs = [(rule, sp) for rule in rules for sp in rule.sub_patterns]
        pairs.sort(key=lambda pair: _TYPE_ORDER[pair[1].type])

        consumed: Set[int] = set()
        items: List[ExtractedItem] = []
        attempted: List[str] = []

        for rule, sub_pattern in pairs:
            if rule.id not in attempted:
                attempted.append(rule.id)
            found = self.matcher.match(
                rule, sub_pattern, context.lines, consumed, context.currency
            )
            items.extend(found)

        if self.item_scale != 1.0:
            items = [i.with_changes(confidence=i.confidence * self.item_scale) for i in items]
        return items, attempted


class ExactMatchStage(PatternStage):
    name = "exact"

    def __init__(self, min_confidence: float = 0.8, matcher: Optional[PatternMatcher] = None):
        super().__init__(min_confidence=min_confidence, matcher=matcher)


class FlexibleMatchStage(PatternStage):
    name = "flexible"

    def __init__(
        self,
        min_confidence: float = 0.5,
        max_confidence: float = 0.8,
        item_scale: float = 0.9,
        matcher: Optional[PatternMatcher] = None,
    ):
        super().__init__(
            min_confidence=min_confidence,
            max_confidence=max_confidence,
            item_scale=item_scale,
            matcher=matcher,
        )
