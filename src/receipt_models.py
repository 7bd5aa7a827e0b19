"""
Receipt Models
==============
Value types shared by every stage of the extraction engine.

  ExtractedItem            one purchase line (immutable)
  ParseResult              items + confidence + diagnostics (immutable)
  ProcessingOptions        per-call knobs (threshold, time budget, fallback)
  ReceiptAnalysisContext   per-call working state, never shared between calls

Money is always a Decimal.  JPY prices are integer-valued, USD / EUR prices
carry two decimals.
"""

import time
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


DEFAULT_CATEGORY = "other"


class Currency(str, Enum):
    JPY = "JPY"
    USD = "USD"
    EUR = "EUR"


def clamp_confidence(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


# ─── Items ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExtractedItem:
    """
    A single extracted purchase line.

    `metadata` carries optional extras picked up by a pattern:
    tax_type ('T' / 'E'), product_code, unit_price, unit, store_specific,
    discount.
    """
    name: str
    price: Optional[Decimal]
    quantity: int = 1
    currency: Currency = Currency.JPY
    confidence: float = 0.0
    category: str = DEFAULT_CATEGORY
    source_pattern: str = ""
    line_numbers: Tuple[int, ...] = ()
    raw_text: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "confidence", clamp_confidence(self.confidence))
        object.__setattr__(self, "line_numbers", tuple(self.line_numbers))
        object.__setattr__(self, "currency", Currency(self.currency))
        if self.price is not None and not isinstance(self.price, Decimal):
            object.__setattr__(self, "price", Decimal(str(self.price)))

    @property
    def first_line(self) -> int:
        return self.line_numbers[0] if self.line_numbers else 10 ** 9

    @property
    def has_price(self) -> bool:
        return self.price is not None and self.price > 0

    def with_changes(self, **changes) -> "ExtractedItem":
        """Return a copy with the given fields replaced."""
        if "metadata" not in changes:
            changes["metadata"] = dict(self.metadata)
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        price: Any = None
        if self.price is not None:
            price = int(self.price) if self.currency == Currency.JPY else float(self.price)
        return {
            "name":           self.name,
            "price":          price,
            "quantity":       self.quantity,
            "currency":       self.currency.value,
            "confidence":     round(self.confidence, 4),
            "category":       self.category,
            "source_pattern": self.source_pattern,
            "line_numbers":   list(self.line_numbers),
            "raw_text":       self.raw_text,
            "metadata":       _jsonable(self.metadata),
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


# ─── Results ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ParseResult:
    """
    Outcome of one extraction.

    metadata keys: processing_time_ms, patterns_attempted, fallback_used,
    store_type, pattern_used, stages, and after the orchestrator also
    corrections, rejected_items, global_issues, quality.
    """
    pattern_id: str
    confidence: float
    items: Tuple[ExtractedItem, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "confidence", clamp_confidence(self.confidence))
        object.__setattr__(self, "items", tuple(self.items))

    @property
    def fallback_used(self) -> bool:
        return bool(self.metadata.get("fallback_used", False))

    def with_changes(self, **changes) -> "ParseResult":
        if "metadata" not in changes:
            changes["metadata"] = dict(self.metadata)
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern_id": self.pattern_id,
            "confidence": round(self.confidence, 4),
            "items":      [item.to_dict() for item in self.items],
            "metadata":   _jsonable(self.metadata),
        }

    @classmethod
    def empty(cls, pattern_id: str = "no-match", **metadata) -> "ParseResult":
        base = {
            "processing_time_ms": 0,
            "patterns_attempted": [],
            "fallback_used":      False,
        }
        base.update(metadata)
        return cls(pattern_id=pattern_id, confidence=0.0, items=(), metadata=base)


# ─── Per-call context ─────────────────────────────────────────────────────────

@dataclass
class ProcessingOptions:
    confidence_threshold: float = 0.3
    max_processing_time_ms: int = 5000
    enable_fallback: bool = True

    @classmethod
    def from_dict(cls, values: Optional[Dict[str, Any]]) -> "ProcessingOptions":
        values = values or {}
        return cls(
            confidence_threshold=float(values.get("confidence_threshold", 0.3)),
            max_processing_time_ms=int(values.get("max_processing_time_ms", 5000)),
            enable_fallback=bool(values.get("enable_fallback", True)),
        )


@dataclass
class ReceiptAnalysisContext:
    """
    Working state for a single receipt.

    `lines` holds the stripped, non-empty input lines; every line number
    reported on an item is an index into this list.
    """
    original_text: str
    lines: List[str]
    options: ProcessingOptions = field(default_factory=ProcessingOptions)
    detected_store: Optional[str] = None
    currency: Currency = Currency.JPY
    patterns: Tuple[Any, ...] = ()
    started_at: float = field(default_factory=time.monotonic)

    @classmethod
    def from_text(
        cls,
        text: str,
        options: Optional[ProcessingOptions] = None,
        **kwargs,
    ) -> "ReceiptAnalysisContext":
        text = text or ""
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        return cls(
            original_text=text,
            lines=lines,
            options=options or ProcessingOptions(),
            **kwargs,
        )

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000.0

    def budget_exhausted(self) -> bool:
        return self.elapsed_ms() >= self.options.max_processing_time_ms
