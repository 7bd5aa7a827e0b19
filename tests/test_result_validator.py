"""
Tests for Result Validator
"""

import pytest
import sys
from decimal import Decimal
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from result_validator import ResultValidator


@pytest.fixture
def validator():
    return ResultValidator()


# ─── Rules ────────────────────────────────────────────────────────────────────

def test_clean_item_passes_untouched(validator, make_item):
    report = validator.validate([make_item()])
    check = report.items[0]
    assert check.is_valid
    assert check.confidence == pytest.approx(0.8)
    assert check.issues == []


def test_missing_price_is_rejected(validator, make_item):
    report = validator.validate([make_item(price=None)])
    check = report.items[0]
    assert not check.is_valid
    assert check.confidence == pytest.approx(0.24)
    assert [i.field for i in check.issues] == ["price"]
    assert report.valid_items == []
    assert len(report.rejected) == 1


def test_digits_only_name_is_rejected(validator, make_item):
    report = validator.validate([make_item(name="1234")])
    assert not report.items[0].is_valid


def test_high_price_is_a_warning_only(validator, make_item):
    report = validator.validate([make_item(price=150000)])
    check = report.items[0]
    assert check.is_valid
    assert check.confidence == pytest.approx(0.48)
    assert check.issues[0].severity == "warning"


def test_price_written_in_name_disagrees(validator, make_item):
    report = validator.validate([make_item(name="Tea 150円", price=200)])
    assert report.items[0].confidence == pytest.approx(0.64)


def test_fallback_source_suggests_review(validator, make_item):
    report = validator.validate([make_item(source_pattern="fallback")])
    check = report.items[0]
    assert check.is_valid
    assert check.confidence == pytest.approx(0.72)
    assert "manual review recommended" in check.suggestions


def test_near_duplicates_are_flagged(validator, make_item):
    items = [make_item("Milk", 200), make_item("milk", 205, line_numbers=(1,))]
    report = validator.validate(items)
    for check in report.items:
        assert check.is_valid
        assert check.confidence == pytest.approx(0.64)
        assert "duplicate" in check.issues[0].message


def test_valid_items_carry_adjusted_confidence(validator, make_item):
    kept = validator.validate([make_item(price=150000)]).valid_items
    assert kept[0].confidence == pytest.approx(0.48)


# ─── Global checks ────────────────────────────────────────────────────────────

def test_no_items_is_a_global_error(validator):
    report = validator.validate([])
    assert report.items == []
    assert report.global_issues[0].severity == "error"


def test_mostly_unpriced_receipt_gets_suggestion(validator, make_item):
    items = [make_item(price=None), make_item(price=None), make_item("Tea", 150)]
    report = validator.validate(items)
    assert any("price" in s for s in report.suggestions)


def test_summary(validator, make_item):
    report = validator.validate([make_item(), make_item("Tea", price=None)])
    summary = validator.summary(report)
    assert summary["checked"] == 2
    assert summary["valid"] == 1
    assert summary["rejected"] == 1


# ─── Auto-correction ──────────────────────────────────────────────────────────

def test_price_recovered_from_raw_text(validator, make_item):
    items, corrections = validator.auto_correct([make_item(price=None, raw_text="Milk 198")])
    assert items[0].price == Decimal("198")
    assert corrections[0].field == "price"
    assert corrections[0].confidence == pytest.approx(0.7)
    assert corrections[0].to_dict()["old_value"] is None


def test_quantity_defaults_to_one(validator, make_item):
    items, corrections = validator.auto_correct([make_item(quantity=0)])
    assert items[0].quantity == 1
    assert corrections[0].to_dict()["new_value"] == "1"


def test_name_noise_is_stripped(validator, make_item):
    items, corrections = validator.auto_correct([make_item(name="*Bread*")])
    assert items[0].name == "Bread"
    assert corrections[0].field == "name"


def test_auto_correct_is_idempotent(validator, make_item):
    items, _ = validator.auto_correct([
        make_item(name="*Bread*", price=None, quantity=0, raw_text="*Bread* 120"),
    ])
    again, corrections = validator.auto_correct(items)
    assert corrections == []
    assert again == items


def test_unrecoverable_price_stays_missing(validator, make_item):
    items, corrections = validator.auto_correct([make_item(price=None, raw_text="Milk")])
    assert items[0].price is None
    assert corrections == []


def test_auto_correct_can_be_disabled(make_item):
    validator = ResultValidator(auto_correct=False)
    items, corrections = validator.auto_correct([make_item(quantity=0)])
    assert items[0].quantity == 0
    assert corrections == []


def test_empty_rule_list_checks_nothing(make_item):
    report = ResultValidator(rules=[]).validate([make_item(price=None)])
    check = report.items[0]
    assert check.is_valid
    assert check.issues == []
    assert check.confidence == pytest.approx(0.8)
