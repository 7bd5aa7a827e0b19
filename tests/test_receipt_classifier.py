"""
Tests for Store Classifier
"""

import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from receipt_classifier import StoreClassifier


@pytest.fixture
def classifier():
    return StoreClassifier()


def test_empty_text_is_generic(classifier):
    assert classifier.classify("") is None
    assert classifier.classify("   \n  ") is None


def test_keyword_detects_warehouse(classifier):
    text = "COSTCO WHOLESALE\nUGG ANSLEY\n5,966 T"
    assert classifier.classify(text) == "warehouse"


def test_keywords_are_case_insensitive(classifier):
    assert classifier.classify("welcome to costco") == "warehouse"


def test_structure_alone_is_below_threshold(classifier):
    # five-line block scores +5 only
    text = "Widget\n123456\n2個\n500\n1,000 T"
    scores = classifier.classify_with_scores(text)
    assert scores["warehouse"] == 5.0
    assert classifier.classify(text) is None


def test_keyword_and_structure_add_up(classifier):
    text = "コストコ\nWidget\n123456\n2個\n500\n1,000 T"
    # +10 any keyword, +2 one occurrence, +5 structure
    assert classifier.classify_with_scores(text)["warehouse"] == 17.0


def test_life_supermarket(classifier):
    text = "ライフ 中央店\n*牛乳 ¥198\n*食パン ¥158"
    assert classifier.classify(text) == "life"


def test_cafe_quantity_structure(classifier):
    text = "ドトールコーヒー\nブレンド\n2コX単150 ¥300"
    assert classifier.classify(text) == "cafe"


def test_cafe_chain_name_without_quantity_lines(classifier):
    assert classifier.classify("STARBUCKS COFFEE\nLATTE ¥480") == "cafe"


def test_cafe_product_words_are_not_a_store(classifier):
    assert classifier.classify("カフェオレ\n¥150\n牛乳\n¥198") is None
    assert classifier.classify("COFFEE BEANS 1,280\nCAFE MOCHA 450") is None


def test_unknown_store_is_generic(classifier):
    assert classifier.classify("Corner Shop\nBread 200\nEggs 250") is None


def test_tie_goes_to_first_registered():
    classifier = StoreClassifier(signatures={})
    classifier.register("alpha", ["SHOP"])
    classifier.register("beta", ["SHOP"])
    assert classifier.classify("SHOP") == "alpha"


def test_register_new_store():
    classifier = StoreClassifier()
    classifier.register("bakery", ["BAKERY"], keyword_weight=3.0, structure_patterns=[r"^PAN\s"])
    assert "bakery" in classifier.known_stores
    assert classifier.classify("HAPPY BAKERY\nPAN 120") == "bakery"


def test_custom_threshold():
    strict = StoreClassifier(threshold=50)
    assert strict.classify("COSTCO") is None
