"""
Tests for scoring functions and money helpers
"""

import pytest
import sys
from decimal import Decimal
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from item_scoring import (
    item_similarity,
    overall_confidence,
    price_closeness,
    price_in_bounds,
    quality_score,
    score_line_candidate,
)
from receipt_models import Currency
from utils import detect_currency, format_price, is_summary_line, parse_amount


# ─── Money ────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("text,expected", [
    ("1,000 T", Decimal("1000")),
    ("¥228", Decimal("228")),
    ("$12.34", Decimal("12.34")),
    ("1O5", Decimal("105")),
    ("498※", Decimal("498")),
    ("abc", None),
])
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


@pytest.mark.parametrize("text,currency", [
    ("Snack ¥228", Currency.JPY),
    ("合計 1,000円", Currency.JPY),
    ("Coffee $3.50", Currency.USD),
    ("Bread 2.49", Currency.USD),
    ("Brot 2,49 EUR", Currency.EUR),
    ("Widget 1000", Currency.JPY),
])
def test_detect_currency(text, currency):
    assert detect_currency(text) == currency


def test_format_price():
    assert format_price(Decimal("227.5"), Currency.JPY) == Decimal("228")
    assert format_price(Decimal("3.456"), Currency.USD) == Decimal("3.46")
    assert format_price(None, Currency.JPY) is None


def test_summary_lines():
    assert is_summary_line("合計 1,000")
    assert is_summary_line("小 計")
    assert is_summary_line("TOTAL 12.00")
    assert is_summary_line("お釣り 0")
    assert is_summary_line("割引")
    assert is_summary_line("値引 -50")
    assert not is_summary_line("Snack ¥228")


# ─── Heuristic candidate ──────────────────────────────────────────────────────

def test_candidate_full_score():
    assert score_line_candidate("Bread", "200", Decimal("200")) == 1.0


def test_candidate_out_of_bounds_price():
    # digits + name + length, no price bonus
    assert score_line_candidate("Bread", "150000", Decimal("150000")) == 0.8


def test_price_bounds_per_currency():
    assert price_in_bounds(Decimal("99999"), Currency.JPY)
    assert not price_in_bounds(Decimal("0.5"), Currency.JPY)
    assert price_in_bounds(Decimal("0.50"), Currency.USD)
    assert not price_in_bounds(None, Currency.USD)


# ─── Quality / similarity / aggregate ─────────────────────────────────────────

def test_quality_score_formula():
    # 0.4×0.5 + 0.3×(2/3) + 0.2×0 − 0.1×1
    assert quality_score(0.5, 2, 0.0, 1) == pytest.approx(0.3)


def test_quality_score_clamped():
    assert quality_score(1.0, 10, 1.0, 0) == 0.9
    assert quality_score(0.0, 0, 0.0, 3) == 0.0


def test_price_closeness():
    assert price_closeness(Decimal("200"), Decimal("205")) == 1.0
    assert price_closeness(Decimal("100"), Decimal("150")) == pytest.approx(2 / 3)
    assert price_closeness(None, Decimal("100")) == 0.0


def test_item_similarity_identical_names():
    assert item_similarity("Milk", Decimal("200"), "Milk", Decimal("205")) == pytest.approx(1.0)


def test_item_similarity_ignores_case_and_spaces():
    assert item_similarity("K S Water", Decimal("798"), "ks water", Decimal("798")) == pytest.approx(1.0)


def test_overall_confidence_weights_strong_items():
    assert overall_confidence([1.0, 0.5]) == pytest.approx(1.25 / 1.5, abs=1e-4)
    assert overall_confidence([]) == 0.0
