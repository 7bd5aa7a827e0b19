"""
Item Scoring
============
Pure scoring functions used across the engine.  Every weight lives in a
module-level table so tuning never touches control flow.

  score_store_signature   store classifier
  score_line_candidate    heuristic stage
  quality_score           hybrid merger
  item_similarity         deduplicator
  overall_confidence      optimizer
"""

import re
from decimal import Decimal
from re import Pattern
from typing import Iterable, List, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from receipt_models import Currency
from utils import looks_like_product_name


# ─── Store signature ──────────────────────────────────────────────────────────

STORE_WEIGHTS = {
    "any_keyword":  10.0,   # flat bonus once any keyword occurs
    "structure":     5.0,   # bonus when a structural regex matches
}


def score_store_signature(
    text: str,
    keywords: Sequence[str],
    keyword_weight: float,
    structure_patterns: Sequence[Pattern],
) -> float:
    """
    +10 if any keyword occurs, + occurrences × weight per keyword,
    +5 if any structural pattern matches.  Keywords are case-insensitive.
    """
    if not text:
        return 0.0
    folded = text.lower()
    counts = [folded.count(kw.lower()) for kw in keywords if kw]
    score = 0.0
    if any(counts):
        score += STORE_WEIGHTS["any_keyword"]
    score += sum(c * keyword_weight for c in counts)
    if any(p.search(text) for p in structure_patterns):
        score += STORE_WEIGHTS["structure"]
    return score


# ─── Heuristic candidate ──────────────────────────────────────────────────────

HEURISTIC_WEIGHTS = {
    "digits":       0.3,   # price token actually contains digits
    "price_bounds": 0.2,   # price inside the plausible range
    "product_name": 0.3,   # name reads like a product
    "name_length":  0.2,   # name length in [2, 50]
}

PLAUSIBLE_PRICE = {
    Currency.JPY: (Decimal("1"), Decimal("99999")),
    Currency.USD: (Decimal("0.01"), Decimal("9999.99")),
    Currency.EUR: (Decimal("0.01"), Decimal("9999.99")),
}

_HAS_DIGIT = re.compile(r'\d')


def price_in_bounds(price: Optional[Decimal], currency: Currency) -> bool:
    if price is None:
        return False
    low, high = PLAUSIBLE_PRICE[currency]
    return low <= price <= high


def score_line_candidate(
    name: str,
    price_text: str,
    price: Optional[Decimal],
    currency: Currency = Currency.JPY,
) -> float:
    """Score a (name, price) pair found by proximity, in [0, 1]."""
    score = 0.0
    if price_text and _HAS_DIGIT.search(price_text):
        score += HEURISTIC_WEIGHTS["digits"]
    if price_in_bounds(price, currency):
        score += HEURISTIC_WEIGHTS["price_bounds"]
    if looks_like_product_name(name):
        score += HEURISTIC_WEIGHTS["product_name"]
    if name and 2 <= len(name) <= 50:
        score += HEURISTIC_WEIGHTS["name_length"]
    return round(min(score, 1.0), 4)


# ─── Result quality (hybrid merge) ────────────────────────────────────────────

QUALITY_WEIGHTS = {
    "confidence":        0.4,
    "coverage":          0.3,   # min(item_count / 3, 1)
    "high_confidence":   0.2,   # share of items above 0.8
    "suspicious":        0.1,   # penalty per suspicious pattern
}
QUALITY_COVERAGE_ITEMS = 3
QUALITY_MAX_PENALISED = 3


def quality_score(
    confidence: float,
    item_count: int,
    high_confidence_ratio: float,
    suspicious_count: int,
) -> float:
    score = (
        QUALITY_WEIGHTS["confidence"] * confidence
        + QUALITY_WEIGHTS["coverage"] * min(item_count / QUALITY_COVERAGE_ITEMS, 1.0)
        + QUALITY_WEIGHTS["high_confidence"] * high_confidence_ratio
        - QUALITY_WEIGHTS["suspicious"] * min(suspicious_count, QUALITY_MAX_PENALISED)
    )
    return round(max(0.0, min(1.0, score)), 4)


# ─── Similarity (deduplication) ───────────────────────────────────────────────

SIMILARITY_WEIGHTS = {
    "name":  0.7,
    "price": 0.3,
}
PRICE_CLOSE_RATIO = Decimal("0.1")


def _name_key(name: str) -> str:
    return re.sub(r'\s+', '', name or '').lower()


def name_similarity(a: str, b: str) -> float:
    return Levenshtein.normalized_similarity(_name_key(a), _name_key(b))


def price_closeness(a: Optional[Decimal], b: Optional[Decimal]) -> float:
    """1.0 within 10%, else 1 - relative difference; 0 when either is missing."""
    if a is None or b is None:
        return 0.0
    largest = max(abs(a), abs(b))
    if largest == 0:
        return 1.0
    diff = abs(a - b) / largest
    if diff < PRICE_CLOSE_RATIO:
        return 1.0
    return float(max(Decimal(0), 1 - diff))


def item_similarity(
    name_a: str, price_a: Optional[Decimal],
    name_b: str, price_b: Optional[Decimal],
) -> float:
    return (
        SIMILARITY_WEIGHTS["name"] * name_similarity(name_a, name_b)
        + SIMILARITY_WEIGHTS["price"] * price_closeness(price_a, price_b)
    )


# ─── Aggregate confidence ─────────────────────────────────────────────────────

def overall_confidence(confidences: Iterable[float]) -> float:
    """Confidence-weighted mean: Σc² / Σc."""
    values: List[float] = [c for c in confidences if c > 0]
    total = sum(values)
    if total == 0:
        return 0.0
    return round(sum(c * c for c in values) / total, 4)


def mean(values: Iterable[float]) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0


def ratio(part: int, whole: int) -> float:
    return part / whole if whole else 0.0

