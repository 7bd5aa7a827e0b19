"""
Tests for Product Normalizer and Categorizer
"""

import pytest
import sys
from decimal import Decimal
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from product_categorizer import ProductCategorizer
from product_normalizer import ProductNormalizer
from receipt_models import Currency, ExtractedItem


@pytest.fixture
def normalizer():
    return ProductNormalizer()


@pytest.fixture
def categorizer():
    return ProductCategorizer()


# ─── Names ────────────────────────────────────────────────────────────────────

def test_full_width_is_folded(normalizer):
    assert normalizer.normalize_name("ＭＩＬＫ　１Ｌ") == "MILK 1L"


def test_asterisk_markers_removed(normalizer):
    assert normalizer.normalize_name("*牛乳") == "牛乳"
    assert normalizer.normalize_name("**  Bread  **") == "Bread"


def test_bullet_after_digit_becomes_counter(normalizer):
    assert normalizer.normalize_name("卵 10●") == "卵 10個"


def test_digit_confusions_only_between_digits(normalizer):
    assert normalizer.normalize_name("1O5") == "105"
    assert normalizer.normalize_name("OLIVE OIL") == "OLIVE OIL"


def test_units_unified(normalizer):
    assert normalizer.normalize_name("COLA 500ML") == "COLA 500ml"
    assert normalizer.normalize_name("RICE 150G") == "RICE 150g"
    assert normalizer.normalize_name("WATER 1LX2") == "WATER 1L×2"
    assert normalizer.normalize_name("water 1lx2") == "water 1L×2"
    assert normalizer.normalize_name("COLA 500MLx2") == "COLA 500ml×2"


def test_brand_aliases(normalizer):
    assert normalizer.normalize_name("ks bath tissue") == "KS bath tissue"
    assert normalizer.normalize_name("Kirkland Nuts") == "KIRKLAND Nuts"


@pytest.mark.parametrize("raw", [
    "ＭＩＬＫ　１Ｌ", "*牛乳", "卵 10●", "WATER 1LX2", "water 1lx2", "ks bath tissue", "  -COLA 500ML- ",
])
def test_normalization_is_idempotent(normalizer, raw):
    once = normalizer.normalize_name(raw)
    assert normalizer.normalize_name(once) == once


def test_extract_unit(normalizer):
    assert normalizer.extract_unit("WATER 500ml×2") == {"size": "500", "unit": "ml", "pack": 2}
    assert normalizer.extract_unit("Bread") is None


def test_normalize_item_rounds_price(normalizer):
    item = ExtractedItem(name="COLA 500ML", price=Decimal("1.005"), currency=Currency.USD)
    result = normalizer.normalize_item(item)
    assert result.name == "COLA 500ml"
    assert result.price == Decimal("1.01")
    assert result.metadata["unit"] == {"size": "500", "unit": "ml"}


# ─── Categories ───────────────────────────────────────────────────────────────

@pytest.mark.parametrize("name,category", [
    ("キャベツ", "vegetables"),
    ("Banana", "fruits"),
    ("豚肉こま切れ", "meat"),
    ("Milk", "dairy"),
    ("食パン", "bread_grains"),
    ("Snack", "snacks"),
    ("KS BATH TISSUE", "household"),
    ("UGG ANSLEY", "apparel"),
    ("Shampoo", "household"),
])
def test_keyword_categories(categorizer, name, category):
    assert categorizer.categorize(name) == category


def test_latin_keywords_match_whole_words(categorizer):
    # "ham" must not match inside "shampoo"
    assert categorizer.categorize("shampoo") != "meat"


def test_suffix_and_unit_hints(categorizer):
    assert categorizer.categorize("小松菜") == "vegetables"
    assert categorizer.categorize("Something 500ml") == "beverages"
    assert categorizer.categorize("Something 200g") == "food"
    assert categorizer.categorize("Widget") == "other"


def test_existing_category_is_kept(categorizer):
    item = ExtractedItem(name="Milk", price=200, category="beverages")
    assert categorizer.apply(item).category == "beverages"
    fresh = ExtractedItem(name="Milk", price=200)
    assert categorizer.apply(fresh).category == "dairy"
