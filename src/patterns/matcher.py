"""
Pattern Matcher
===============
Interprets one sub-pattern against the receipt lines and builds items.

For every anchor line the matcher lays the sub-pattern's window over the
lines, checks each required line against its regex, pulls the fields out
with the extraction rules, applies the validation rules and finally
builds an ExtractedItem.  Lines already consumed by an earlier match in
the same stage are never reused.
"""

import re
from decimal import Decimal
from functools import lru_cache
from typing import Any, Dict, List, Optional, Set, Union

from loguru import logger

from patterns.definitions import PatternConfig, ValidationRule
from receipt_models import Currency, ExtractedItem
from utils import clean_item_name, format_price, is_summary_line, parse_amount


_NUMERIC_FIELDS = ("price", "quantity", "unit_price")


@lru_cache(maxsize=512)
def compile_regex(pattern: str) -> re.Pattern:
    return re.compile(pattern)


class PatternMatcher:
    """
    Applies sub-patterns of a rule to receipt lines.

    Usage
    -----
    matcher = PatternMatcher()
    items = matcher.match(rule, sub_pattern, lines, consumed, Currency.JPY)
    """

    def match(
        self,
        rule: PatternConfig,
        sub_pattern: Any,
        lines: List[str],
        consumed: Optional[Set[int]] = None,
        currency: Currency = Currency.JPY,
    ) -> List[ExtractedItem]:
        """
        Find every non-overlapping match of `sub_pattern` in `lines`.

        `consumed` is updated in place with the line indices used.
        """
        consumed = consumed if consumed is not None else set()
        offsets = sub_pattern.offsets()
        required = sub_pattern.required_offsets()
        items: List[ExtractedItem] = []

        for anchor in range(len(lines)):
            window = self._match_window(sub_pattern, lines, anchor, offsets, required, consumed)
            if window is None:
                continue

            fields = self._extract_fields(sub_pattern, lines, anchor, window)
            item = self._build_item(rule, sub_pattern, lines, anchor, window, fields, currency)
            if item is None:
                continue

            items.append(item)
            consumed.update(item.line_numbers)

        if items:
            logger.debug(f"[PatternMatcher] {sub_pattern.id}: {len(items)} items")
        return items

    # ── Window matching ───────────────────────────────────────────────────────

    def _match_window(
        self,
        sub_pattern: Any,
        lines: List[str],
        anchor: int,
        offsets: List[int],
        required: List[int],
        consumed: Set[int],
    ) -> Optional[Dict[int, re.Match]]:
        matches: Dict[int, re.Match] = {}
        for offset in offsets:
            idx = anchor + offset
            is_required = offset in required
            if idx < 0 or idx >= len(lines) or idx in consumed:
                if is_required:
                    return None
                continue
            m = compile_regex(sub_pattern.line_regex(offset)).search(lines[idx])
            if m is None:
                if is_required:
                    return None
                continue
            matches[offset] = m
        return matches

    def _extract_fields(
        self,
        sub_pattern: Any,
        lines: List[str],
        anchor: int,
        window: Dict[int, re.Match],
    ) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        for rule in sub_pattern.extraction_rules:
            value: Any = None
            if rule.source == "default":
                value = rule.value
            elif rule.source == "line-content":
                if rule.line_offset in window:
                    value = lines[anchor + rule.line_offset]
            else:
                m = window.get(rule.line_offset)
                if m is not None and rule.group_index <= (m.re.groups or 0):
                    value = m.group(rule.group_index)
            if value is None:
                continue
            if rule.field == "name" and "name" in fields:
                fields["name"] = f"{fields['name']} {value}"
            elif rule.field not in fields:
                fields[rule.field] = value
        return fields

    # ── Item construction ─────────────────────────────────────────────────────

    def _build_item(
        self,
        rule: PatternConfig,
        sub_pattern: Any,
        lines: List[str],
        anchor: int,
        window: Dict[int, re.Match],
        fields: Dict[str, Any],
        currency: Currency,
    ) -> Optional[ExtractedItem]:
        name = clean_item_name(str(fields.get("name") or ""))
        price = parse_amount(fields.get("price"))
        if not name or price is None:
            return None
        if is_summary_line(name):
            return None

        quantity = 1
        if fields.get("quantity") is not None:
            qty = parse_amount(fields["quantity"])
            quantity = int(qty) if qty is not None else 1

        values: Dict[str, Union[str, Decimal, int]] = {
            "name": name,
            "price": price,
            "quantity": quantity,
        }
        unit_price = parse_amount(fields.get("unit_price"))
        if unit_price is not None:
            values["unit_price"] = unit_price

        for check in sub_pattern.validation_rules:
            if not self._passes(check, values.get(check.field, fields.get(check.field))):
                logger.debug(
                    f"[PatternMatcher] {sub_pattern.id} rejected {name!r}: "
                    f"{check.field} failed {check.kind} check"
                )
                return None

        metadata: Dict[str, Any] = {
            "rule_id": rule.id,
            "store_specific": rule.is_store_specific,
        }
        if unit_price is not None:
            metadata["unit_price"] = format_price(unit_price, currency)
        for key in ("product_code", "tax_type", "unit"):
            if fields.get(key) is not None:
                metadata[key] = str(fields[key]).strip()
        discount = self._discount(fields, price, currency)
        if discount:
            metadata["discount"] = discount

        line_numbers = tuple(sorted(anchor + off for off in window)) or (anchor,)
        item_kwargs: Dict[str, Any] = {}
        if fields.get("category"):
            item_kwargs["category"] = str(fields["category"])

        return ExtractedItem(
            name=name,
            price=format_price(price, currency),
            quantity=quantity,
            currency=currency,
            confidence=sub_pattern.confidence,
            source_pattern=sub_pattern.id,
            line_numbers=line_numbers,
            raw_text="\n".join(lines[i] for i in line_numbers),
            metadata=metadata,
            **item_kwargs,
        )

    @staticmethod
    def _discount(fields: Dict[str, Any], price: Decimal, currency: Currency) -> Optional[Dict[str, Any]]:
        """Discount block: the printed price is what was paid, the amount was taken off it."""
        amount = parse_amount(fields.get("discount_amount"))
        if amount is None:
            return None
        amount = abs(amount)
        percent = parse_amount(fields.get("discount_percent"))
        return {
            "percent": int(percent) if percent is not None else None,
            "amount": format_price(amount, currency),
            "original_price": format_price(price + amount, currency),
        }

    @staticmethod
    def _passes(check: ValidationRule, value: Any) -> bool:
        if value is None:
            return False
        if check.kind == "pattern":
            return compile_regex(check.pattern).search(str(value)) is not None
        if check.kind == "length":
            measured: Any = len(str(value))
        else:
            measured = value if check.field in _NUMERIC_FIELDS else parse_amount(value)
            if measured is None:
                return False
        if check.min is not None and Decimal(str(measured)) < Decimal(str(check.min)):
            return False
        if check.max is not None and Decimal(str(measured)) > Decimal(str(check.max)):
            return False
        return True
