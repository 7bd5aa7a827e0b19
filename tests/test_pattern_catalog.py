"""
Tests for Pattern Catalog and rule definitions
"""

import copy
import json

import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from extraction_errors import ConfigError
from patterns.catalog import PatternCatalog
from patterns.defaults import DEFAULT_PATTERNS, PATTERN_TEMPLATES
from patterns.definitions import validate_pattern


def make_rule(rule_id="test-rule", **overrides):
    rule = {
        "id": rule_id,
        "name": "Test rule",
        "priority": 40,
        "confidence": 0.7,
        "store_identifiers": [],
        "sub_patterns": [{
            "id": f"{rule_id}-main",
            "name": "name price",
            "type": "single-line",
            "regex": r"^(.+?)\s+(\d+)$",
            "confidence": 0.7,
            "extraction_rules": [
                {"source": "regex-group", "field": "name", "group_index": 1},
                {"source": "regex-group", "field": "price", "group_index": 2},
            ],
        }],
    }
    rule.update(overrides)
    return rule


@pytest.fixture
def catalog():
    return PatternCatalog()


def exported_patterns(catalog):
    return catalog.export_document()["patterns"]


# ─── Definitions ──────────────────────────────────────────────────────────────

def test_defaults_are_valid(catalog):
    assert len(catalog) == len(DEFAULT_PATTERNS)
    assert "warehouse-standard" in catalog


def test_templates_are_valid():
    for template in PATTERN_TEMPLATES.values():
        validate_pattern(template)


def test_confidence_out_of_range_names_field():
    with pytest.raises(ConfigError) as exc:
        validate_pattern(make_rule(confidence=1.5))
    assert exc.value.field == "confidence"


def test_invalid_regex_rejected():
    rule = make_rule()
    rule["sub_patterns"][0]["regex"] = "([unclosed"
    with pytest.raises(ConfigError) as exc:
        validate_pattern(rule)
    assert exc.value.field == "sub_patterns.0.regex"


def test_unknown_sub_pattern_type_rejected():
    rule = make_rule()
    rule["sub_patterns"][0]["type"] = "diagonal"
    with pytest.raises(ConfigError) as exc:
        validate_pattern(rule)
    assert exc.value.field == "sub_patterns.0.type"


def test_multi_line_needs_one_regex_per_line():
    rule = make_rule()
    rule["sub_patterns"][0] = {
        "id": "test-rule-2line",
        "name": "two lines",
        "type": "multi-line",
        "line_count": 3,
        "line_patterns": [r"^(.+)$", r"^(\d+)$"],
        "extraction_rules": [{"source": "regex-group", "field": "name", "line_offset": 0}],
    }
    with pytest.raises(ConfigError):
        validate_pattern(rule)


def test_empty_sub_patterns_rejected():
    with pytest.raises(ConfigError) as exc:
        validate_pattern(make_rule(sub_patterns=[]))
    assert exc.value.field == "sub_patterns"


# ─── Mutations ────────────────────────────────────────────────────────────────

def test_add_invalid_rule_leaves_catalog_unchanged(catalog):
    before = len(catalog)
    with pytest.raises(ConfigError):
        catalog.add(make_rule(confidence=1.5))
    assert len(catalog) == before


def test_add_and_get(catalog):
    catalog.add(make_rule())
    assert catalog.get("test-rule").priority == 40


def test_add_duplicate_id_rejected(catalog):
    catalog.add(make_rule())
    with pytest.raises(ConfigError) as exc:
        catalog.add(make_rule())
    assert exc.value.field == "id"


def test_get_unknown_raises_key_error(catalog):
    with pytest.raises(KeyError):
        catalog.get("nope")


def test_update_revalidates(catalog):
    catalog.add(make_rule())
    updated = catalog.update("test-rule", {"priority": 99})
    assert updated.priority == 99
    with pytest.raises(ConfigError):
        catalog.update("test-rule", {"confidence": -1})
    assert catalog.get("test-rule").confidence == 0.7


def test_update_cannot_change_id(catalog):
    catalog.add(make_rule())
    with pytest.raises(ConfigError) as exc:
        catalog.update("test-rule", {"id": "other"})
    assert exc.value.field == "id"


def test_delete(catalog):
    catalog.add(make_rule())
    catalog.delete("test-rule")
    assert "test-rule" not in catalog
    with pytest.raises(KeyError):
        catalog.delete("test-rule")


def test_toggle(catalog):
    assert catalog.toggle("generic-price").enabled is False
    assert "generic-price" not in [p.id for p in catalog.applicable_for(None)]
    assert catalog.toggle("generic-price").enabled is True


def test_duplicate_renames_sub_patterns(catalog):
    copy_rule = catalog.duplicate("supermarket-asterisk", "asterisk-copy")
    assert copy_rule.name == "Asterisk-marked items (copy)"
    assert [sp.id for sp in copy_rule.sub_patterns] == ["asterisk-copy-inline", "asterisk-copy-2line"]
    assert "supermarket-asterisk" in catalog


# ─── Selection ────────────────────────────────────────────────────────────────

def test_applicable_for_store_puts_store_rules_first(catalog):
    ids = [p.id for p in catalog.applicable_for("warehouse")]
    assert ids[:2] == ["warehouse-known-products", "warehouse-standard"]
    assert "yen-inline" in ids
    assert "supermarket-asterisk" not in ids


def test_applicable_without_store_is_every_enabled_rule(catalog):
    rules = catalog.applicable_for(None)
    assert len(rules) == len(catalog)
    priorities = [r.priority for r in rules]
    assert priorities == sorted(priorities, reverse=True)


def test_stats(catalog):
    stats = catalog.stats()
    assert stats["total"] == len(DEFAULT_PATTERNS)
    assert stats["enabled"] == stats["total"]
    assert stats["by_store"]["warehouse"] == 2
    assert stats["by_type"]["multi-line"] >= 3


# ─── Import / export ──────────────────────────────────────────────────────────

def test_export_document_shape(catalog):
    doc = catalog.export_document()
    assert doc["version"] == "1.0"
    assert "export_date" in doc
    assert len(doc["patterns"]) == len(catalog)


def test_import_round_trip_into_empty_catalog(catalog):
    empty = PatternCatalog(patterns=[])
    assert empty.import_document(catalog.export_json()) == len(catalog)
    assert exported_patterns(empty) == exported_patterns(catalog)


def test_import_is_atomic(catalog):
    before = exported_patterns(catalog)
    doc = {"version": "1.0", "patterns": [make_rule("good-one"), make_rule("bad-one", confidence=2)]}
    with pytest.raises(ConfigError) as exc:
        catalog.import_document(doc)
    assert exc.value.field == "patterns.1.confidence"
    assert exported_patterns(catalog) == before


def test_import_rejects_duplicate_ids(catalog):
    doc = {"patterns": [make_rule("same"), make_rule("same")]}
    with pytest.raises(ConfigError):
        catalog.import_document(doc)
    assert "same" not in catalog


def test_import_bad_json(catalog):
    with pytest.raises(ConfigError) as exc:
        catalog.import_document("{not json")
    assert exc.value.field == "document"


def test_import_replace(catalog):
    catalog.import_document({"patterns": [make_rule()]}, replace=True)
    assert [p.id for p in catalog.list_patterns()] == ["test-rule"]


def test_save_and_load_overrides(catalog, tmp_path):
    catalog.add(make_rule())
    path = tmp_path / "patterns.json"
    catalog.save(path)
    assert json.loads(path.read_text(encoding="utf-8"))["version"] == "1.0"

    fresh = PatternCatalog()
    assert fresh.load_overrides(path) == len(catalog)
    assert "test-rule" in fresh


def test_load_overrides_missing_file(catalog, tmp_path):
    assert catalog.load_overrides(tmp_path / "missing.json") == 0


def test_defaults_not_mutated_by_catalog(catalog):
    snapshot = copy.deepcopy(DEFAULT_PATTERNS)
    catalog.update("yen-inline", {"priority": 1})
    assert DEFAULT_PATTERNS == snapshot
