"""
Heuristic Stage
===============
Catalog-free extraction for layouts no rule recognises.

Two passes over the lines:

  Pass A  inline   "NAME   1,280" / "NAME ¥1280" / "NAME $12.80"
  Pass B  split    a name line followed, within `window` lines, by a
                   price-only line

Every (name, price) candidate is scored by item_scoring.score_line_candidate
(digits +0.3, plausible price +0.2, product-like name +0.3, name length
+0.2).  Candidates scoring ≥ min_score are kept with confidence
score × weight.
"""

import re
from typing import List, Optional, Set, Tuple

from loguru import logger

from item_scoring import score_line_candidate
from receipt_models import Currency, ExtractedItem, ReceiptAnalysisContext
from stages.base_stage import BaseStage
from utils import clean_item_name, format_price, is_digits_only, is_summary_line, parse_amount


# ─── Shared patterns ──────────────────────────────────────────────────────────

_SEPARATOR    = re.compile(r'^[\-\*\=\s\.・_]+$')
_PRICE_ONLY   = re.compile(r'^[¥￥$€]?\s*(\d[\d,]{0,6}(?:\.\d{2})?)\s*[TE※*]?$')
_PRICE_INLINE = re.compile(r'^(.+?)\s*[\s¥￥$€]\s*(\d[\d,]{0,6}(?:\.\d{2})?)\s*[TE※*]?$')
_BARCODE      = re.compile(r'^\d{6,14}$')
_PERCENT      = re.compile(r'^\d{1,3}\s*[%％]$')
_DEDUCTION    = re.compile(r'^[-−▲]\s*[¥￥]?\s*[\d,]+$')


def _is_name_line(line: str) -> bool:
    s = line.strip()
    if len(s) < 2:
        return False
    if is_digits_only(s) or _SEPARATOR.match(s):
        return False
    if _PRICE_ONLY.match(s) or _PERCENT.match(s) or _DEDUCTION.match(s):
        return False
    return not is_summary_line(s)


class HeuristicStage(BaseStage):
    """Proximity-based name / price pairing, scored 0–1."""

    name = "heuristic"

    def __init__(self, window: int = 2, min_score: float = 0.5, weight: float = 0.75):
        self.window = window
        self.min_score = min_score
        self.weight = weight

    def _items(self, context: ReceiptAnalysisContext) -> Tuple[List[ExtractedItem], List[str]]:
        lines = context.lines
        n = len(lines)
        used: Set[int] = set()
        items: List[ExtractedItem] = []

        # Pass A: inline
        for i in range(n):
            s = lines[i]
            m = _PRICE_INLINE.match(s)
            if not m or is_summary_line(s):
                continue
            item = self._candidate(m.group(1), m.group(2), (i,), lines, context.currency)
            if item:
                items.append(item)
                used.add(i)

        # Pass B: name → price within window
        for i in range(n):
            if i in used or not _is_name_line(lines[i]):
                continue
            for j in range(i + 1, min(n, i + 1 + self.window)):
                if j in used:
                    continue
                if _BARCODE.match(lines[j]):
                    continue
                m = _PRICE_ONLY.match(lines[j])
                if not m:
                    if _is_name_line(lines[j]):
                        break
                    continue
                item = self._candidate(lines[i], m.group(1), (i, j), lines, context.currency)
                if item:
                    items.append(item)
                    used.update((i, j))
                break

        logger.debug(f"[HeuristicStage] {len(items)} candidates kept")
        return items, [self.name]

    def _candidate(
        self,
        raw_name: str,
        price_text: str,
        line_numbers: Tuple[int, ...],
        lines: List[str],
        currency: Currency,
    ) -> Optional[ExtractedItem]:
        name = clean_item_name(raw_name)
        if not name or is_digits_only(name) or _PERCENT.match(name) or is_summary_line(name):
            return None
        price = parse_amount(price_text)
        score = score_line_candidate(name, price_text, price, currency)
        if price is None or price <= 0 or score < self.min_score:
            return None
        return ExtractedItem(
            name=name,
            price=format_price(price, currency),
            currency=currency,
            confidence=score * self.weight,
            source_pattern=self.name,
            line_numbers=line_numbers,
            raw_text="\n".join(lines[k] for k in line_numbers),
            metadata={"heuristic_score": score},
        )
