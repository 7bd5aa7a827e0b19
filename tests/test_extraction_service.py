"""
Tests for Extraction Service
"""

import pytest
import sys
from decimal import Decimal
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import extraction_service
from extraction_errors import ConfigError
from extraction_service import ExtractionService
from receipt_models import ExtractedItem, ParseResult, ProcessingOptions
from stages.base_stage import BaseStage
from stages.pipeline import StagedPipeline


WAREHOUSE_BLOCK = "Widget\n123456\n2個\n500\n1,000 T"

CANDIDATE_RULE = {
    "id": "name-number",
    "name": "Name then number",
    "priority": 40,
    "confidence": 0.7,
    "store_identifiers": [],
    "sub_patterns": [{
        "id": "name-number-main",
        "name": "name number",
        "type": "single-line",
        "regex": r"^(.+?)\s+(\d+)$",
        "confidence": 0.7,
        "extraction_rules": [
            {"source": "regex-group", "field": "name", "group_index": 1},
            {"source": "regex-group", "field": "price", "group_index": 2},
        ],
    }],
}


class CannedStage(BaseStage):
    """Returns fixed items regardless of the text."""

    name = "canned"

    def __init__(self, items):
        self.items = items

    def _items(self, context):
        return list(self.items), [self.name]


class BrokenClassifier:
    def classify(self, text):
        raise RuntimeError("classifier exploded")


@pytest.fixture(scope="module")
def service():
    return ExtractionService()


# ─── Config ───────────────────────────────────────────────────────────────────

def test_missing_config_falls_back_to_defaults(tmp_path):
    service = ExtractionService(config_path=str(tmp_path / "missing.yaml"))
    assert service.config["classifier"]["threshold"] == 10
    assert service.document_service is None


def test_config_file_overrides_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("optimizer:\n  similarity_threshold: 0.95\npipeline:\n  enable_fallback: false\n",
                    encoding="utf-8")
    service = ExtractionService(config_path=str(path))
    assert service.optimizer.similarity_threshold == 0.95
    assert service.default_options().enable_fallback is False
    assert service.config["pipeline"]["confidence_threshold"] == 0.3


# ─── Extraction ───────────────────────────────────────────────────────────────

def test_warehouse_block(service):
    result = service.extract(WAREHOUSE_BLOCK)

    assert result.pattern_id == "warehouse-standard"
    assert len(result.items) == 1
    item = result.items[0]
    assert (item.name, item.price, item.quantity) == ("Widget", Decimal("1000"), 2)
    assert item.confidence >= 0.9
    assert result.fallback_used is False
    assert result.metadata["currency"] == "JPY"


def test_single_yen_line(service):
    result = service.extract("Snack ¥228")
    assert [(i.name, i.price, i.quantity) for i in result.items] == [("Snack", Decimal("228"), 1)]
    assert result.items[0].category == "snacks"
    assert 0 < result.confidence <= 1


def test_empty_text(service):
    result = service.extract("")
    assert isinstance(result, ParseResult)
    assert result.items == ()
    assert result.confidence == 0.0
    assert result.metadata["global_issues"][0]["message"] == "no items extracted"


def test_options_as_dict(service):
    result = service.extract("hello world", {"enable_fallback": False})
    assert result.pattern_id == "no-match"
    assert result.items == ()


def test_options_as_object(service):
    options = ProcessingOptions(enable_fallback=False)
    result = service.extract("hello world", options)
    assert "fallback:skipped" in result.metadata["patterns_attempted"]


def test_result_carries_diagnostics(service):
    result = service.extract("Snack ¥228")
    for key in ("processing_time_ms", "patterns_attempted", "stages", "corrections",
                "rejected_items", "global_issues", "quality"):
        assert key in result.metadata
    assert result.metadata["quality"]["item_count"] == 1


def test_corrections_and_rejections_reported():
    service = ExtractionService()
    service.pipeline = StagedPipeline(stages=[CannedStage([
        ExtractedItem(name="Bread", price=None, quantity=0, confidence=0.8,
                      raw_text="Bread 120", line_numbers=(0,)),
        ExtractedItem(name="1234", price=500, confidence=0.8, line_numbers=(1,)),
    ])])
    result = service.extract("Bread 120\n1234 500")

    assert sorted(c["field"] for c in result.metadata["corrections"]) == ["price", "quantity"]
    assert [r["name"] for r in result.metadata["rejected_items"]] == ["1234"]
    assert [(i.name, i.price, i.quantity) for i in result.items] == [("Bread", Decimal("120"), 1)]


def test_unexpected_failure_returns_empty_result():
    service = ExtractionService(classifier=BrokenClassifier())
    result = service.extract("Snack ¥228")
    assert result.items == ()
    assert result.metadata["error"] == "classifier exploded"


def test_result_is_json_ready(service):
    data = service.extract(WAREHOUSE_BLOCK).to_dict()
    assert data["items"][0]["price"] == 1000
    assert data["items"][0]["metadata"]["unit_price"] == 500


# ─── Pattern testing ──────────────────────────────────────────────────────────

def test_candidate_rule_runs_alone(service):
    before = len(service.catalog)
    result = service.test_pattern(CANDIDATE_RULE, "Apple 120\nPear 90")

    assert result.pattern_id == "name-number"
    assert result.metadata["tested_pattern"] == "name-number"
    assert [(i.name, i.price) for i in result.items] == [("Apple", Decimal("120")), ("Pear", Decimal("90"))]
    assert len(service.catalog) == before
    assert "name-number" not in service.catalog


def test_candidate_rule_without_matches(service):
    result = service.test_pattern(CANDIDATE_RULE, "nothing to see")
    assert result.items == ()
    assert result.fallback_used is False


def test_invalid_candidate_rule(service):
    with pytest.raises(ConfigError) as exc:
        service.test_pattern({**CANDIDATE_RULE, "confidence": 1.5}, "Apple 120")
    assert exc.value.field == "confidence"


# ─── Hybrid ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_hybrid_without_external_service(service):
    result = await service.extract_hybrid("Snack ¥228")
    assert result.success
    assert result.metadata["methods_used"] == ["pattern"]
    assert [i.name for i in result.items] == ["Snack"]


def test_merge_strategy_comes_from_config(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("hybrid:\n  merge_strategy: pattern-match-first\n", encoding="utf-8")
    service = ExtractionService(config_path=str(path))
    assert service.merger.merge_strategy == "pattern-match-first"


def test_unknown_merge_strategy_is_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("hybrid:\n  merge_strategy: newest-wins\n", encoding="utf-8")
    with pytest.raises(ConfigError) as exc:
        ExtractionService(config_path=str(path))
    assert exc.value.field == "merge_strategy"


# ─── Logging ──────────────────────────────────────────────────────────────────

def test_logging_section_configures_loguru(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("logging:\n  level: DEBUG\n  file: logs/debug.log\n", encoding="utf-8")
    calls = []
    monkeypatch.setattr(extraction_service, "setup_logging", lambda **kwargs: calls.append(kwargs))

    ExtractionService(config_path=str(path)).configure_logging()
    assert calls == [{"log_file": "logs/debug.log", "level": "DEBUG"}]


# ─── Receipt layouts ──────────────────────────────────────────────────────────

@pytest.mark.parametrize("text", [
    "ヨーグルト\n割引\n20%\n398\n-80",
    "ヨーグルト\n割引\n398※\n20%\n-80",
])
def test_discounted_item(service, text):
    result = service.extract(text)

    assert len(result.items) == 1
    item = result.items[0]
    assert item.price == Decimal("398")
    assert item.metadata["discount"]["percent"] == 20
    assert item.metadata["discount"]["original_price"] == Decimal("478")
    assert "20%" not in [i.name for i in result.items]


def test_warehouse_name_split_over_two_lines(service):
    result = service.extract("COSTCO\nORGANIC\nBANANA 1.3KG\n123456\n1\n398\n398 E")

    assert result.metadata["store_type"] == "warehouse"
    assert len(result.items) == 1
    item = result.items[0]
    assert "ORGANIC" in item.name.upper()
    assert "BANANA" in item.name.upper()
    assert item.price == Decimal("398")
