"""
Result Validator
================
Checks every extracted item against a priority-ordered rule set and
optionally auto-corrects recoverable defects first.

Rules (priority)
────────────────
  price      (10)  missing / non-positive, implausibly high or low, outlier
  name        (9)  empty, too short / long, digits only, symbols only
  quantity    (8)  below 1, implausibly high
  format      (7)  price written in the name disagrees, fallback provenance
  duplicate   (6)  same name at (almost) the same price elsewhere

Each rule returns a RuleOutcome; an item's confidence is multiplied by
every rule's adjustment.  Any 'error' issue invalidates the item.

Auto-correction never invents data: it only re-reads the price from the
item's own raw text, defaults the quantity to 1 and trims noise symbols
from the name.  Running it twice changes nothing the second time.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from item_scoring import mean, price_in_bounds, ratio
from receipt_models import Currency, ExtractedItem
from utils import clean_item_name, is_digits_only, is_symbols_only, parse_amount


# ─── Result types ─────────────────────────────────────────────────────────────

@dataclass
class ValidationIssue:
    severity: str          # 'error' | 'warning' | 'info'
    field: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"severity": self.severity, "field": self.field, "message": self.message}


@dataclass
class RuleOutcome:
    is_valid: bool = True
    confidence_adjustment: float = 1.0
    issues: List[ValidationIssue] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    def add(self, severity: str, field_name: str, message: str, factor: float = 1.0):
        self.issues.append(ValidationIssue(severity, field_name, message))
        self.confidence_adjustment *= factor
        if severity == "error":
            self.is_valid = False


@dataclass
class ItemValidation:
    index: int
    item: ExtractedItem
    is_valid: bool
    confidence: float
    issues: List[ValidationIssue] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)


@dataclass
class Correction:
    index: int
    field: str
    old_value: Any
    new_value: Any
    confidence: float
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "field": self.field,
            "old_value": None if self.old_value is None else str(self.old_value),
            "new_value": str(self.new_value),
            "confidence": self.confidence,
            "reason": self.reason,
        }


@dataclass
class ValidationReport:
    items: List[ItemValidation] = field(default_factory=list)
    global_issues: List[ValidationIssue] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    @property
    def valid_items(self) -> List[ExtractedItem]:
        return [v.item.with_changes(confidence=v.confidence) for v in self.items if v.is_valid]

    @property
    def rejected(self) -> List[ItemValidation]:
        return [v for v in self.items if not v.is_valid]


@dataclass
class ValidationContext:
    items: List[ExtractedItem]
    currency: Currency
    average_price: Optional[Decimal]


# ─── Rules ────────────────────────────────────────────────────────────────────

# currency → (warn above, warn below)
_PRICE_LIMITS = {
    Currency.JPY: (Decimal("100000"), Decimal("10")),
    Currency.USD: (Decimal("1000"), Decimal("0.5")),
    Currency.EUR: (Decimal("1000"), Decimal("0.5")),
}
_DUPLICATE_PRICE_GAP = {
    Currency.JPY: Decimal("10"),
    Currency.USD: Decimal("0.10"),
    Currency.EUR: Decimal("0.10"),
}
_PRICE_IN_NAME = re.compile(r'(\d[\d,]*)\s*[円¥￥]')
_RAW_AMOUNT = re.compile(r'\d[\d,]*(?:\.\d{2})?')


class ValidationRule:
    name = "rule"
    priority = 0

    def check(self, item: ExtractedItem, ctx: ValidationContext) -> RuleOutcome:
        raise NotImplementedError(f"{self.__class__.__name__} must implement check()")


class PriceRule(ValidationRule):
    name = "price"
    priority = 10

    def check(self, item, ctx):
        out = RuleOutcome()
        high, low = _PRICE_LIMITS[item.currency]
        if item.price is None or item.price <= 0:
            out.add("error", "price", "price is missing or not positive", 0.3)
            out.suggestions.append("re-extract the price from the raw line")
            return out
        if item.price > high:
            out.add("warning", "price", f"price {item.price} is unusually high", 0.6)
        elif item.price < low:
            out.add("warning", "price", f"price {item.price} is unusually low", 0.8)
        if ctx.average_price and item.price > ctx.average_price * 5:
            out.suggestions.append(
                f"price {item.price} is over 5× the receipt average ({ctx.average_price:.0f}); check for a merged digit"
            )
        return out


class NameRule(ValidationRule):
    name = "name"
    priority = 9

    def check(self, item, ctx):
        out = RuleOutcome()
        name = (item.name or "").strip()
        if not name:
            out.add("error", "name", "name is empty", 0.2)
            return out
        if is_digits_only(name):
            out.add("error", "name", "name is digits only", 0.3)
        elif is_symbols_only(name):
            out.add("error", "name", "name is symbols only", 0.3)
        if len(name) < 2:
            out.add("warning", "name", "name is shorter than 2 characters", 0.6)
        elif len(name) > 50:
            out.add("warning", "name", "name is longer than 50 characters", 0.7)
        if clean_item_name(name) != name:
            out.suggestions.append(f"clean up name to {clean_item_name(name)!r}")
        return out


class QuantityRule(ValidationRule):
    name = "quantity"
    priority = 8

    def check(self, item, ctx):
        out = RuleOutcome()
        if item.quantity < 1:
            out.add("error", "quantity", f"quantity {item.quantity} is below 1", 0.5)
            out.suggestions.append("set quantity to 1")
        elif item.quantity > 100:
            out.add("warning", "quantity", f"quantity {item.quantity} is unusually high", 0.7)
        return out


class FormatRule(ValidationRule):
    name = "format"
    priority = 7

    def check(self, item, ctx):
        out = RuleOutcome()
        m = _PRICE_IN_NAME.search(item.name or "")
        if m and item.price is not None:
            written = parse_amount(m.group(1))
            if written is not None and written != item.price:
                out.add("warning", "price", f"name mentions {written} but price is {item.price}", 0.8)
        if item.source_pattern.startswith("fallback"):
            out.add("info", "source_pattern", "extracted by the fallback stage", 0.9)
            out.suggestions.append("manual review recommended")
        return out


class DuplicateRule(ValidationRule):
    name = "duplicate"
    priority = 6

    def check(self, item, ctx):
        out = RuleOutcome()
        if item.price is None:
            return out
        gap = _DUPLICATE_PRICE_GAP[item.currency]
        key = (item.name or "").strip().casefold()
        for other in ctx.items:
            if other is item or other.price is None:
                continue
            if (other.name or "").strip().casefold() == key and abs(other.price - item.price) < gap:
                out.add("warning", "name", f"possible duplicate of {other.name!r}", 0.8)
                break
        return out


DEFAULT_RULES: List[ValidationRule] = [
    PriceRule(), NameRule(), QuantityRule(), FormatRule(), DuplicateRule(),
]


# ─── Validator ────────────────────────────────────────────────────────────────

class ResultValidator:
    """
    Usage
    -----
    validator = ResultValidator()
    items, corrections = validator.auto_correct(items)
    report = validator.validate(items)
    kept   = report.valid_items
    """

    def __init__(self, rules: Optional[List[ValidationRule]] = None, auto_correct: bool = True):
        self.rules = sorted(DEFAULT_RULES if rules is None else rules, key=lambda r: -r.priority)
        self.auto_correct_enabled = auto_correct

    def validate(self, items: List[ExtractedItem]) -> ValidationReport:
        items = list(items)
        currency = items[0].currency if items else Currency.JPY
        priced = [i.price for i in items if i.price is not None and i.price > 0]
        average = (sum(priced) / len(priced)) if priced else None
        ctx = ValidationContext(items=items, currency=currency, average_price=average)

        report = ValidationReport()
        for index, item in enumerate(items):
            confidence = item.confidence
            is_valid = True
            issues: List[ValidationIssue] = []
            suggestions: List[str] = []
            for rule in self.rules:
                outcome = rule.check(item, ctx)
                confidence *= outcome.confidence_adjustment
                is_valid = is_valid and outcome.is_valid
                issues.extend(outcome.issues)
                suggestions.extend(outcome.suggestions)
            report.items.append(ItemValidation(
                index=index,
                item=item,
                is_valid=is_valid,
                confidence=max(0.0, min(1.0, confidence)),
                issues=issues,
                suggestions=suggestions,
            ))

        self._global_checks(items, report)
        return report

    def _global_checks(self, items: List[ExtractedItem], report: ValidationReport):
        if not items:
            report.global_issues.append(ValidationIssue("error", "items", "no items extracted"))
            return
        if len(items) > 50:
            report.global_issues.append(
                ValidationIssue("warning", "items", f"{len(items)} items is unusually many for one receipt")
            )
        priced = sum(1 for i in items if i.has_price)
        if ratio(priced, len(items)) < 0.5:
            report.suggestions.append("fewer than half of the items have a price; check the price column")

    # ── Auto-correction ───────────────────────────────────────────────────────

    def auto_correct(self, items: List[ExtractedItem]) -> Tuple[List[ExtractedItem], List[Correction]]:
        """Fix recoverable defects; returns (items, corrections applied)."""
        if not self.auto_correct_enabled:
            return list(items), []

        corrected: List[ExtractedItem] = []
        corrections: List[Correction] = []
        for index, item in enumerate(items):
            changes: Dict[str, Any] = {}

            if item.price is None or item.price <= 0:
                recovered = self._price_from_raw(item)
                if recovered is not None:
                    changes["price"] = recovered
                    corrections.append(Correction(index, "price", item.price, recovered, 0.7,
                                                  "re-read from raw text"))

            if item.quantity < 1:
                changes["quantity"] = 1
                corrections.append(Correction(index, "quantity", item.quantity, 1, 0.9,
                                              "default quantity"))

            cleaned = clean_item_name(item.name)
            if cleaned != item.name and len(cleaned) >= 2:
                changes["name"] = cleaned
                corrections.append(Correction(index, "name", item.name, cleaned, 0.8,
                                              "stripped noise symbols"))

            corrected.append(item.with_changes(**changes) if changes else item)

        for c in corrections:
            logger.debug(f"[ResultValidator] Corrected item {c.index} {c.field}: {c.old_value!r} → {c.new_value!r}")
        if corrections:
            logger.info(f"[ResultValidator] {len(corrections)} auto-corrections applied")
        return corrected, corrections

    @staticmethod
    def _price_from_raw(item: ExtractedItem) -> Optional[Decimal]:
        candidates = [parse_amount(tok) for tok in _RAW_AMOUNT.findall(item.raw_text or "")]
        plausible = [c for c in candidates if price_in_bounds(c, item.currency)]
        return plausible[-1] if plausible else None

    def summary(self, report: ValidationReport) -> Dict[str, Any]:
        return {
            "checked": len(report.items),
            "valid": sum(1 for v in report.items if v.is_valid),
            "rejected": len(report.rejected),
            "average_confidence": round(mean(v.confidence for v in report.items), 4),
            "global_issues": [i.to_dict() for i in report.global_issues],
            "suggestions": list(report.suggestions),
        }
