"""
Result Optimizer
================
Post-processing applied to validated items:

  1. normalize    names, prices, units            (ProductNormalizer)
  2. categorize   back-fill missing categories    (ProductCategorizer)
  3. deduplicate  merge near-identical items      (item_scoring.item_similarity)
  4. re-score     price / name / source trust factors
  5. filter       drop confidence < 0.1 and implausible names
  6. sort         confidence desc, first line asc, name

Deduplication repeats until no pair is merged, so deduplicating its own
output returns the same items.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from loguru import logger

from item_scoring import item_similarity, overall_confidence
from product_categorizer import ProductCategorizer
from product_normalizer import ProductNormalizer
from receipt_models import Currency, ExtractedItem, ParseResult
from utils import is_digits_only, is_symbols_only, special_char_ratio


_JPY_PRICE_FACTORS = {
    "below_one":   0.1,
    "over_100000": 0.3,
    "over_50000":  0.7,
    "odd_yen":     0.9,   # > 100 and not a multiple of 10
}
_DECIMAL_PRICE_FACTORS = {
    "below_cent":  0.1,
    "over_1000":   0.3,
    "over_500":    0.7,
}
_NAME_FACTORS = {
    "too_short":   0.2,
    "too_long":    0.5,
    "digits_only": 0.1,
    "symbols":     0.1,
    "special":     0.6,   # > 30% non-alphanumeric
}
_SOURCE_FACTORS = {
    "fallback":       0.8,
    "store_specific": 1.1,
}
MIN_CONFIDENCE = 0.1

GRADES = [
    (0.85, "excellent"),
    (0.70, "good"),
    (0.50, "fair"),
]


class ResultOptimizer:
    """
    Usage
    -----
    optimizer = ResultOptimizer()
    items     = optimizer.optimize(items, Currency.JPY)
    """

    def __init__(
        self,
        similarity_threshold: float = 0.8,
        normalizer: Optional[ProductNormalizer] = None,
        categorizer: Optional[ProductCategorizer] = None,
    ):
        self.similarity_threshold = similarity_threshold
        self.normalizer = normalizer or ProductNormalizer()
        self.categorizer = categorizer or ProductCategorizer()

    def optimize(self, items: List[ExtractedItem], currency: Optional[Currency] = None) -> List[ExtractedItem]:
        before = len(items)
        items = self.normalizer.normalize_items(list(items), currency)
        items = [self.categorizer.apply(item) for item in items]
        items = self.deduplicate(items)
        items = [self._rescore(item) for item in items]
        items = [i for i in items if i.confidence >= MIN_CONFIDENCE and self._name_ok(i.name)]
        items.sort(key=lambda i: (-i.confidence, i.first_line, i.name))
        logger.debug(f"[ResultOptimizer] {before} → {len(items)} items")
        return items

    # ── Deduplication ─────────────────────────────────────────────────────────

    def deduplicate(self, items: List[ExtractedItem]) -> List[ExtractedItem]:
        """Merge pairs whose similarity exceeds the threshold, until stable."""
        items = list(items)
        merged = True
        while merged:
            merged = False
            for i in range(len(items)):
                for j in range(i + 1, len(items)):
                    a, b = items[i], items[j]
                    if item_similarity(a.name, a.price, b.name, b.price) > self.similarity_threshold:
                        keep = self._preferred(a, b)
                        logger.debug(f"[ResultOptimizer] merged {a.name!r} / {b.name!r} → {keep.name!r}")
                        items[i] = keep
                        del items[j]
                        merged = True
                        break
                if merged:
                    break
        return items

    @staticmethod
    def _preferred(a: ExtractedItem, b: ExtractedItem) -> ExtractedItem:
        if a.confidence != b.confidence:
            return a if a.confidence > b.confidence else b
        if len(a.name) != len(b.name):
            return a if len(a.name) > len(b.name) else b
        return a if a.first_line <= b.first_line else b

    # ── Re-scoring ────────────────────────────────────────────────────────────

    def _rescore(self, item: ExtractedItem) -> ExtractedItem:
        factor = self._price_factor(item.price, item.currency)
        factor *= self._name_factor(item.name)
        if item.source_pattern.startswith("fallback"):
            factor *= _SOURCE_FACTORS["fallback"]
        if item.metadata.get("store_specific"):
            factor *= _SOURCE_FACTORS["store_specific"]
        if factor == 1.0:
            return item
        return item.with_changes(confidence=item.confidence * factor)

    @staticmethod
    def _price_factor(price: Optional[Decimal], currency: Currency) -> float:
        if price is None:
            return 1.0
        if currency == Currency.JPY:
            if price < 1:
                return _JPY_PRICE_FACTORS["below_one"]
            if price > 100000:
                return _JPY_PRICE_FACTORS["over_100000"]
            if price > 50000:
                return _JPY_PRICE_FACTORS["over_50000"]
            if price > 100 and price % 10 != 0:
                return _JPY_PRICE_FACTORS["odd_yen"]
            return 1.0
        if price < Decimal("0.01"):
            return _DECIMAL_PRICE_FACTORS["below_cent"]
        if price > 1000:
            return _DECIMAL_PRICE_FACTORS["over_1000"]
        if price > 500:
            return _DECIMAL_PRICE_FACTORS["over_500"]
        return 1.0

    @staticmethod
    def _name_factor(name: str) -> float:
        factor = 1.0
        if len(name) < 2:
            factor *= _NAME_FACTORS["too_short"]
        elif len(name) > 50:
            factor *= _NAME_FACTORS["too_long"]
        if is_digits_only(name):
            factor *= _NAME_FACTORS["digits_only"]
        elif is_symbols_only(name):
            factor *= _NAME_FACTORS["symbols"]
        elif special_char_ratio(name) > 0.3:
            factor *= _NAME_FACTORS["special"]
        return factor

    @staticmethod
    def _name_ok(name: str) -> bool:
        return bool(name) and len(name) >= 2 and not is_digits_only(name) and not is_symbols_only(name)

    # ── Scoring ───────────────────────────────────────────────────────────────

    @staticmethod
    def overall_confidence(items: List[ExtractedItem]) -> float:
        return overall_confidence(i.confidence for i in items)

    def evaluate(self, result: ParseResult) -> Dict[str, Any]:
        """Grade a result and list what holds it back."""
        issues: List[str] = []
        items = list(result.items)
        if not items:
            issues.append("no items extracted")
        if result.fallback_used:
            issues.append("fallback stage produced the result")
        low = [i.name for i in items if i.confidence < 0.5]
        if low:
            issues.append(f"{len(low)} low-confidence items")
        missing = sum(1 for i in items if not i.has_price)
        if missing:
            issues.append(f"{missing} items without a price")

        score = self.overall_confidence(items) if items else 0.0
        grade = "poor"
        for bound, name in GRADES:
            if score >= bound:
                grade = name
                break
        return {
            "grade": grade,
            "score": score,
            "item_count": len(items),
            "issues": issues,
        }
