"""
Fallback Stage
==============
Last resort: one generic "name, whitespace, number" regex applied to every
line independently.  Always yields a result (possibly empty) at a fixed,
low confidence so downstream consumers know to review it.
"""

import re
from typing import List, Tuple

from loguru import logger

from item_scoring import price_in_bounds
from receipt_models import ExtractedItem, ReceiptAnalysisContext
from stages.base_stage import BaseStage
from utils import clean_item_name, format_price, is_digits_only, is_summary_line, parse_amount


_FALLBACK_LINE = re.compile(r'(.{2,50}?)\s+[¥￥$]?(\d{2,6})\s*$')


class FallbackStage(BaseStage):
    """Generic line scan with a fixed confidence."""

    name = "fallback"
    is_fallback = True

    def __init__(self, confidence: float = 0.3):
        self.confidence = confidence

    def _items(self, context: ReceiptAnalysisContext) -> Tuple[List[ExtractedItem], List[str]]:
        items: List[ExtractedItem] = []
        for i, line in enumerate(context.lines):
            m = _FALLBACK_LINE.search(line)
            if not m or is_summary_line(line):
                continue
            name = clean_item_name(m.group(1))
            price = parse_amount(m.group(2))
            if not name or is_digits_only(name):
                continue
            if not price_in_bounds(price, context.currency):
                continue
            items.append(ExtractedItem(
                name=name,
                price=format_price(price, context.currency),
                currency=context.currency,
                confidence=self.confidence,
                source_pattern=self.name,
                line_numbers=(i,),
                raw_text=line,
            ))

        logger.debug(f"[FallbackStage] {len(items)} items")
        return items, [self.name]

    def _confidence(self, items: List[ExtractedItem]) -> float:
        return self.confidence
