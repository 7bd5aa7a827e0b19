"""
Tests for Result Optimizer
"""

import pytest
import sys
from decimal import Decimal
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from receipt_models import ParseResult
from result_optimizer import ResultOptimizer


@pytest.fixture
def optimizer():
    return ResultOptimizer()


# ─── Deduplication ────────────────────────────────────────────────────────────

def test_similar_items_merge_keeping_higher_confidence(optimizer, make_item):
    weaker = make_item("Milk", 200, confidence=0.7)
    stronger = make_item("Milk", 205, confidence=0.9, line_numbers=(3,))
    assert optimizer.deduplicate([weaker, stronger]) == [stronger]


def test_confidence_tie_keeps_earlier_line(optimizer, make_item):
    later = make_item("Milk", 200, line_numbers=(4,))
    earlier = make_item("Milk", 200, line_numbers=(1,))
    assert optimizer.deduplicate([later, earlier]) == [earlier]


def test_distinct_items_are_kept(optimizer, make_item):
    items = [make_item("Milk", 200), make_item("Bread", 150, line_numbers=(1,))]
    assert optimizer.deduplicate(items) == items


def test_deduplication_is_idempotent(optimizer, make_item):
    items = [
        make_item("Milk", 200, confidence=0.7),
        make_item("Milk", 205, confidence=0.9, line_numbers=(1,)),
        make_item("Milk", 198, confidence=0.6, line_numbers=(2,)),
        make_item("Bread", 150, line_numbers=(3,)),
    ]
    once = optimizer.deduplicate(items)
    assert len(once) == 2
    assert optimizer.deduplicate(once) == once


# ─── Optimize ─────────────────────────────────────────────────────────────────

def test_optimize_merges_and_categorizes(optimizer, make_item):
    items = [make_item("Milk", 200, confidence=0.7), make_item("Milk", 200, confidence=0.9)]
    result = optimizer.optimize(items)
    assert len(result) == 1
    assert result[0].confidence == pytest.approx(0.9)
    assert result[0].category == "dairy"


def test_implausible_names_are_dropped(optimizer, make_item):
    result = optimizer.optimize([make_item("1234", 200), make_item("Bread", 150)])
    assert [i.name for i in result] == ["Bread"]


def test_sorted_by_confidence_then_line(optimizer, make_item):
    items = [
        make_item("Tea", 150, confidence=0.6, line_numbers=(0,)),
        make_item("Bread", 120, confidence=0.9, line_numbers=(2,)),
        make_item("Rice", 300, confidence=0.9, line_numbers=(1,)),
    ]
    assert [i.name for i in optimizer.optimize(items)] == ["Rice", "Bread", "Tea"]


def test_odd_yen_price_is_discounted(optimizer, make_item):
    [item] = optimizer.optimize([make_item("Snack", 228, confidence=0.85)])
    assert item.confidence == pytest.approx(0.765)
    assert item.price == Decimal("228")


def test_store_specific_items_are_boosted(optimizer, make_item):
    item = make_item("Widget", 1000, confidence=0.95, metadata={"store_specific": True})
    [result] = optimizer.optimize([item])
    assert result.confidence == 1.0


def test_fallback_items_are_discounted(optimizer, make_item):
    [result] = optimizer.optimize([make_item("Bread", 150, confidence=0.5, source_pattern="fallback")])
    assert result.confidence == pytest.approx(0.4)


# ─── Evaluation ───────────────────────────────────────────────────────────────

def test_evaluate_grades(optimizer, make_item):
    strong = ParseResult("yen-inline", 0.9, items=[make_item(confidence=0.9)])
    report = optimizer.evaluate(strong)
    assert report["grade"] == "excellent"
    assert report["item_count"] == 1
    assert report["issues"] == []

    weak = ParseResult("fallback", 0.3, items=[make_item(confidence=0.3)],
                       metadata={"fallback_used": True})
    report = optimizer.evaluate(weak)
    assert report["grade"] == "poor"
    assert "fallback stage produced the result" in report["issues"]


def test_evaluate_empty_result(optimizer):
    report = optimizer.evaluate(ParseResult.empty())
    assert report["grade"] == "poor"
    assert report["score"] == 0.0
    assert "no items extracted" in report["issues"]
