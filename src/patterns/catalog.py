"""
Pattern Catalog
===============
In-memory store of validated extraction rules.

Reads are lock-free: every mutation builds a new mapping and swaps it in
under a lock, so a reader always sees a consistent snapshot.  Import is
all-or-nothing: the whole document is validated before anything changes.

Usage
-----
    catalog = PatternCatalog()                 # built-in defaults
    rules   = catalog.applicable_for("warehouse")
    catalog.add({...})                         # raises ConfigError if invalid
    doc     = catalog.export_document()
    catalog.import_document(doc)
"""

import json
import threading
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from loguru import logger

from extraction_errors import ConfigError
from patterns.defaults import DEFAULT_PATTERNS
from patterns.definitions import PatternConfig, validate_pattern

EXPORT_VERSION = "1.0"

PatternInput = Union[PatternConfig, Dict[str, Any]]


class PatternCatalog:
    """
    Rule store with validated add / update / delete / import / export.

    Unknown ids raise KeyError; invalid definitions raise ConfigError.
    """

    def __init__(self, patterns: Optional[Iterable[PatternInput]] = None):
        self._lock = threading.RLock()
        initial = DEFAULT_PATTERNS if patterns is None else list(patterns)
        self._patterns: Mapping[str, PatternConfig] = MappingProxyType(
            self._validate_all(initial, prefix="patterns")
        )
        logger.info(f"[PatternCatalog] {len(self._patterns)} patterns loaded")

    # ── Reads ─────────────────────────────────────────────────────────────────

    def snapshot(self) -> Mapping[str, PatternConfig]:
        return self._patterns

    def __len__(self) -> int:
        return len(self._patterns)

    def __contains__(self, pattern_id: object) -> bool:
        return pattern_id in self._patterns

    def __iter__(self) -> Iterator[PatternConfig]:
        return iter(self.list_patterns())

    def get(self, pattern_id: str) -> PatternConfig:
        try:
            return self._patterns[pattern_id]
        except KeyError:
            raise KeyError(f"Pattern '{pattern_id}' not found")

    def list_patterns(self) -> List[PatternConfig]:
        """All rules, highest priority first."""
        return sorted(self._patterns.values(), key=lambda p: -p.priority)

    def applicable_for(self, store: Optional[str]) -> List[PatternConfig]:
        """
        Enabled rules for a receipt.

        With a detected store: that store's rules first, then store-agnostic
        rules, each by descending priority; other stores' rules are left out.
        With no store every enabled rule applies, by descending priority.
        """
        enabled = [p for p in self.list_patterns() if p.enabled]
        if store is None:
            return enabled

        specific = [p for p in enabled if store in p.store_identifiers]
        generic = [p for p in enabled if not p.store_identifiers]
        return specific + generic

    def stats(self) -> Dict[str, Any]:
        snapshot = self._patterns
        by_store: Counter = Counter()
        by_type: Counter = Counter()
        for pattern in snapshot.values():
            for store in pattern.store_identifiers or ["generic"]:
                by_store[store] += 1
            for sp in pattern.sub_patterns:
                by_type[sp.type] += 1
        return {
            "total": len(snapshot),
            "enabled": sum(1 for p in snapshot.values() if p.enabled),
            "by_store": dict(by_store),
            "by_type": dict(by_type),
        }

    # ── Mutations ─────────────────────────────────────────────────────────────

    def add(self, definition: PatternInput) -> PatternConfig:
        pattern = validate_pattern(definition)
        with self._lock:
            if pattern.id in self._patterns:
                raise ConfigError(f"pattern '{pattern.id}' already exists", field="id")
            self._commit({**self._patterns, pattern.id: pattern})
        logger.info(f"[PatternCatalog] Added '{pattern.id}'")
        return pattern

    def update(self, pattern_id: str, changes: Dict[str, Any]) -> PatternConfig:
        """Merge `changes` into an existing rule and re-validate."""
        with self._lock:
            current = self.get(pattern_id)
            if changes.get("id", pattern_id) != pattern_id:
                raise ConfigError("pattern id cannot be changed", field="id")
            merged = {**current.to_dict(), **changes}
            pattern = validate_pattern(merged)
            self._commit({**self._patterns, pattern_id: pattern})
        logger.info(f"[PatternCatalog] Updated '{pattern_id}'")
        return pattern

    def delete(self, pattern_id: str) -> PatternConfig:
        with self._lock:
            removed = self.get(pattern_id)
            remaining = {k: v for k, v in self._patterns.items() if k != pattern_id}
            self._commit(remaining)
        logger.info(f"[PatternCatalog] Deleted '{pattern_id}'")
        return removed

    def toggle(self, pattern_id: str) -> PatternConfig:
        with self._lock:
            current = self.get(pattern_id)
            pattern = current.model_copy(update={"enabled": not current.enabled})
            self._commit({**self._patterns, pattern_id: pattern})
        logger.info(f"[PatternCatalog] '{pattern_id}' enabled={pattern.enabled}")
        return pattern

    def duplicate(self, pattern_id: str, new_id: str, new_name: Optional[str] = None) -> PatternConfig:
        """Copy a rule under a new id; sub-pattern ids become '<new_id>-<suffix>'."""
        source = self.get(pattern_id).to_dict()
        source["id"] = new_id
        source["name"] = new_name or f"{source['name']} (copy)"

        used = set()
        for sp in source["sub_patterns"]:
            suffix = sp["id"].split("-")[-1]
            candidate = f"{new_id}-{suffix}"
            n = 2
            while candidate in used:
                candidate = f"{new_id}-{suffix}{n}"
                n += 1
            used.add(candidate)
            sp["id"] = candidate

        return self.add(source)

    # ── Import / export ───────────────────────────────────────────────────────

    def export_document(self) -> Dict[str, Any]:
        return {
            "version": EXPORT_VERSION,
            "export_date": datetime.now(timezone.utc).isoformat(),
            "patterns": [p.to_dict() for p in self.list_patterns()],
        }

    def export_json(self, indent: int = 2) -> str:
        return json.dumps(self.export_document(), ensure_ascii=False, indent=indent)

    def import_document(self, document: Union[str, bytes, Dict[str, Any]], replace: bool = False) -> int:
        """
        Import rules from an export document (dict or JSON text).

        Imported rules replace rules with the same id; with `replace=True`
        the catalog holds exactly the imported rules.  Nothing changes
        unless every rule in the document is valid.

        Returns
        -------
        Number of rules imported
        """
        if isinstance(document, (str, bytes)):
            try:
                document = json.loads(document)
            except json.JSONDecodeError as e:
                raise ConfigError(f"not valid JSON: {e}", field="document")
        if not isinstance(document, dict) or not isinstance(document.get("patterns"), list):
            raise ConfigError("export document must contain a 'patterns' list", field="patterns")

        staged = self._validate_all(document["patterns"], prefix="patterns")

        with self._lock:
            merged = dict(staged) if replace else {**self._patterns, **staged}
            self._commit(merged)

        logger.success(f"[PatternCatalog] Imported {len(staged)} patterns")
        return len(staged)

    def save(self, path: Union[str, Path]):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.export_json(), encoding="utf-8")
        logger.info(f"[PatternCatalog] Saved {len(self)} patterns to {path}")

    def load_overrides(self, path: Union[str, Path]) -> int:
        """Import a persisted export document over the current rules."""
        path = Path(path)
        if not path.exists():
            logger.warning(f"[PatternCatalog] Override file not found: {path}")
            return 0
        return self.import_document(path.read_text(encoding="utf-8"))

    # ── Internals ─────────────────────────────────────────────────────────────

    @staticmethod
    def _validate_all(definitions: Iterable[PatternInput], prefix: str) -> Dict[str, PatternConfig]:
        staged: Dict[str, PatternConfig] = {}
        for i, definition in enumerate(definitions):
            pattern = validate_pattern(definition, prefix=f"{prefix}.{i}.")
            if pattern.id in staged:
                raise ConfigError(f"duplicate pattern id '{pattern.id}'", field=f"{prefix}.{i}.id")
            staged[pattern.id] = pattern
        return staged

    def _commit(self, patterns: Dict[str, PatternConfig]):
        self._patterns = MappingProxyType(dict(patterns))
