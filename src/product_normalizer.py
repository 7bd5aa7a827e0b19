"""
Product Name Normalizer
Table-driven cleanup of OCR'd product names and prices.

Fixes, in order:
1. Width folding (NFKC: half-width kana, full-width latin and digits)
2. Glyph confusions (bullet / degree glyph standing in for the 個 counter)
3. Digit-context confusions (O → 0, l/I → 1 only between digits)
4. Unit spelling (150G → 150g, 500ML → 500ml, 1LX2 → 1L×2)
5. Brand spelling (case variants and abbreviations → canonical form)
6. Asterisk markers and whitespace (markers go first, edges last)

Every rule is idempotent, so normalize_name(normalize_name(x)) equals
normalize_name(x).
"""

import re
import unicodedata
from typing import Dict, List, Optional, Tuple

from loguru import logger

from receipt_models import Currency, ExtractedItem
from utils import clean_item_name, format_price


# ─── Tables ───────────────────────────────────────────────────────────────────

# glyph after a digit → counter unit
_GLYPH_FIXES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r'(\d)\s*[⚫●•°]'), r'\1個'),
]

# a unit ends at a word boundary or at the pack multiplier ("1lx2")
_UNIT_END = r'(?=[xX×]|\b)'

_UNIT_FIXES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r'(\d)\s*(?:ML|Ml|mL)' + _UNIT_END), r'\1ml'),
    (re.compile(r'(\d)\s*(?:KG|Kg|kG)' + _UNIT_END), r'\1kg'),
    (re.compile(r'(\d)\s*G' + _UNIT_END), r'\1g'),
    (re.compile(r'(\d)\s*(?:LTR|Ltr|ltr|l)' + _UNIT_END), r'\1L'),
    (re.compile(r'(\d)\s*[xX]\s*(\d)'), r'\1×\2'),
    (re.compile(r'(\d(?:ml|g|kg|L))\s*[xX×]\s*(\d)'), r'\1×\2'),
]

_BRAND_ALIASES: Dict[str, str] = {
    r'\bk\.\s?s\.?(?=\s|$)': 'KS',
    r'\bks\b':               'KS',
    r'\bkirkland\b':         'KIRKLAND',
    r'\bugg\b':              'UGG',
    r'\bprosciutto\b':       'PROSCIUTTO',
    r'\btop\s*valu\b':       'TOPVALU',
}

_BRAND_FIXES: List[Tuple[re.Pattern, str]] = [
    (re.compile(pattern, re.IGNORECASE), canonical)
    for pattern, canonical in _BRAND_ALIASES.items()
]

_UNIT_IN_NAME = re.compile(
    r'(\d+(?:\.\d+)?)\s*(kg|g|ml|L|個|本|袋|パック|枚|缶)(?:×(\d+))?'
)


class ProductNormalizer:
    """
    Normalizes product names and formats prices per currency.

    Usage
    -----
    normalizer = ProductNormalizer()
    name = normalizer.normalize_name("ＫＳ ﾊﾞｽﾃｨｯｼｭ 30ROLLX2")
    item = normalizer.normalize_item(item, Currency.JPY)
    """

    def normalize_name(self, name: str) -> str:
        """
        Normalize a single product name.

        Args:
            name: Raw product name as extracted

        Returns:
            Normalized name
        """
        if not name:
            return ""

        original = name

        name = self._fix_width(name)
        name = self._fix_markers(name)
        name = self._fix_glyphs(name)
        name = self._fix_digit_confusions(name)
        name = self._fix_units(name)
        name = self._fix_brands(name)
        name = clean_item_name(name)

        if name != original:
            logger.debug(f"[ProductNormalizer] '{original}' → '{name}'")

        return name

    def _fix_width(self, text: str) -> str:
        return unicodedata.normalize('NFKC', text)

    def _fix_glyphs(self, text: str) -> str:
        for pattern, replacement in _GLYPH_FIXES:
            text = pattern.sub(replacement, text)
        return text

    def _fix_digit_confusions(self, text: str) -> str:
        """
        O → 0 and l / I → 1, only when flanked by digits on BOTH sides so
        product codes and words are never touched.
        """
        result = list(text)
        n = len(result)

        for i, char in enumerate(result):
            prev = result[i - 1] if i > 0     else ''
            nxt  = result[i + 1] if i < n - 1 else ''

            if not (prev.isdigit() and nxt.isdigit()):
                continue
            if char in ('O', 'o'):
                result[i] = '0'
            elif char in ('l', 'I'):
                result[i] = '1'

        return ''.join(result)

    def _fix_units(self, text: str) -> str:
        for pattern, replacement in _UNIT_FIXES:
            text = pattern.sub(replacement, text)
        return text

    def _fix_brands(self, text: str) -> str:
        for pattern, canonical in _BRAND_FIXES:
            text = pattern.sub(canonical, text)
        return text

    def _fix_markers(self, text: str) -> str:
        return clean_item_name(text.replace('*', ' '))

    # ── Items ─────────────────────────────────────────────────────────────────

    def extract_unit(self, name: str) -> Optional[Dict]:
        """Size / unit written in the name, e.g. '500ml×2' → {size, unit, pack}."""
        m = _UNIT_IN_NAME.search(name or "")
        if not m:
            return None
        unit = {"size": m.group(1), "unit": m.group(2)}
        if m.group(3):
            unit["pack"] = int(m.group(3))
        return unit

    def normalize_item(
        self,
        item: ExtractedItem,
        currency: Optional[Currency] = None,
    ) -> ExtractedItem:
        """Normalized name, price rounded to the currency, unit picked up from the name."""
        currency = currency or item.currency
        name = self.normalize_name(item.name)
        metadata = dict(item.metadata)
        if "unit" not in metadata:
            unit = self.extract_unit(name)
            if unit:
                metadata["unit"] = unit
        return item.with_changes(
            name=name,
            price=format_price(item.price, currency),
            currency=currency,
            metadata=metadata,
        )

    def normalize_items(
        self,
        items: List[ExtractedItem],
        currency: Optional[Currency] = None,
    ) -> List[ExtractedItem]:
        return [self.normalize_item(item, currency) for item in items]
