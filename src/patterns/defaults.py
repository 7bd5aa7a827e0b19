"""
Default Pattern Catalog
=======================
Built-in extraction rules, loaded into every PatternCatalog unless the
caller supplies its own list.

Rules by confidence band
────────────────────────
  ≥ 0.8  (exact stage)     warehouse-known-products, warehouse-standard,
                           discount-block, supermarket-asterisk, cafe-quantity, yen-inline,
                           usd-inline
  0.5–0.8 (flexible stage) convenience-standard, supermarket-general,
                           generic-price

warehouse-known-products is the photographed-receipt fixture table: a
keyword on a line pins the product's canonical name, price, category and
tax code.
"""

from typing import Any, Dict, List


def _group(field: str, index: int, offset: int = 0) -> Dict[str, Any]:
    return {"source": "regex-group", "field": field, "group_index": index, "line_offset": offset}


def _line(field: str, offset: int = 0) -> Dict[str, Any]:
    return {"source": "line-content", "field": field, "line_offset": offset}


def _fixed(field: str, value: Any) -> Dict[str, Any]:
    return {"source": "default", "field": field, "value": value}


_NAME_HAS_LETTERS = r'[ぁ-んァ-ヶ一-龯a-zA-Z]'

# One half of a wrapped warehouse name: has letters, is not a price + tax line
# or a store header.
_WRAPPED_NAME_LINE = (
    r'^(?=.*' + _NAME_HAS_LETTERS + r')'
    r'(?![\d\s,]+[TE]?$)'
    r'(?!.*(?i:COSTCO|コストコ|WHOLESALE|WAREHOUSE|会員|\bTEL(?![a-z])))'
    r'(.{2,50})$'
)

# Discount blocks. The printed price is after the discount.
_DISCOUNT_NAME = r'^(?=.*' + _NAME_HAS_LETTERS + r')(?![\d\s,%％\-]+$)(.{2,40})$'
_DISCOUNT_MARK = r'^(?:割引|値引き?)$'
_DISCOUNT_PERCENT = r'^(\d{1,2})\s*[%％]$'
_DISCOUNT_PRICE = r'^[¥￥]?\s*([\d,]{1,6})\s*[※*XTE]?$'
_DISCOUNT_AMOUNT = r'^[-−]\s*[¥￥]?\s*([\d,]{1,6})$'


# ─── Warehouse fixtures ───────────────────────────────────────────────────────

# (sub id, keyword regex, canonical name, price, category, tax code)
_KNOWN_WAREHOUSE_PRODUCTS = [
    ("ugg-ansley",      r'(?i)UGG.*ANSLEY|ANSLEY.*UGG',               "UGG ANSLEY",         5966, "apparel",    "T"),
    ("yudanomu",        r'ユダノム',                                   "ユダノム",            998, "beverages",  "E"),
    ("ks-bath-tissue",  r'(?i)KS\s*BATH\s*TISSUE|バスティッシュ',     "KS BATH TISSUE",     2378, "household",  "T"),
    ("prosciutto",      r'(?i)PROSCIUTTO|プロシュート',               "PROSCIUTTO CRUDO",   1128, "meat",       "E"),
    ("ks-water",        r'(?i)KS\s*WATER|カークランド\s*水',           "KS WATER 40P",        798, "beverages",  "E"),
]


def _known_product(sub_id, keyword, name, price, category, tax):
    return {
        "id": f"known-{sub_id}",
        "name": name,
        "type": "single-line",
        "regex": keyword,
        "confidence": 0.95,
        "extraction_rules": [
            _fixed("name", name),
            _fixed("price", price),
            _fixed("category", category),
            _fixed("tax_type", tax),
        ],
    }


# ─── Rules ────────────────────────────────────────────────────────────────────

DEFAULT_PATTERNS: List[Dict[str, Any]] = [
    {
        "id": "warehouse-known-products",
        "name": "Warehouse known products",
        "description": "Keyword → canonical product for photographed warehouse receipts",
        "priority": 200,
        "enabled": True,
        "confidence": 0.95,
        "store_identifiers": ["warehouse"],
        "sub_patterns": [_known_product(*row) for row in _KNOWN_WAREHOUSE_PRODUCTS],
    },
    {
        "id": "warehouse-standard",
        "name": "Warehouse five-line item block",
        "description": "name / product code / quantity / unit price / price + tax code",
        "priority": 100,
        "enabled": True,
        "confidence": 0.95,
        "store_identifiers": ["warehouse"],
        "sub_patterns": [
            {
                "id": "warehouse-6line",
                "name": "Six-line block, name wrapped onto two lines",
                "type": "multi-line",
                "line_count": 6,
                "line_patterns": [
                    _WRAPPED_NAME_LINE,
                    _WRAPPED_NAME_LINE,
                    r'^(\d{4,8})$',
                    r'^(\d{1,3})\s*[個⚫●°]?$',
                    r'^([\d,]+)$',
                    r'^([\d,]+)\s*([TE])$',
                ],
                "confidence": 0.9,
                "extraction_rules": [
                    _group("name", 1, 0),
                    _group("name", 1, 1),
                    _group("product_code", 1, 2),
                    _group("quantity", 1, 3),
                    _group("unit_price", 1, 4),
                    _group("price", 1, 5),
                    _group("tax_type", 2, 5),
                ],
                "validation_rules": [
                    {"field": "name", "kind": "length", "min": 2, "max": 80},
                    {"field": "price", "kind": "range", "min": 1, "max": 999999},
                ],
            },
            {
                "id": "warehouse-5line",
                "name": "Five-line block",
                "type": "multi-line",
                "line_count": 5,
                "line_patterns": [
                    r'^(?![\d\s,]+$)(.{2,50})$',
                    r'^(\d{4,8})$',
                    r'^(\d{1,3})\s*[個⚫●°]?$',
                    r'^([\d,]+)$',
                    r'^([\d,]+)\s*([TE])$',
                ],
                "confidence": 0.95,
                "extraction_rules": [
                    _group("name", 1, 0),
                    _group("product_code", 1, 1),
                    _group("quantity", 1, 2),
                    _group("unit_price", 1, 3),
                    _group("price", 1, 4),
                    _group("tax_type", 2, 4),
                ],
                "validation_rules": [
                    {"field": "name", "kind": "length", "min": 2, "max": 50},
                    {"field": "price", "kind": "range", "min": 1, "max": 999999},
                ],
            },
        ],
    },
    {
        "id": "discount-block",
        "name": "Discounted item block",
        "description": "name / 割引 / percent and price in either order / -amount",
        "priority": 95,
        "enabled": True,
        "confidence": 0.9,
        "store_identifiers": [],
        "sub_patterns": [
            {
                "id": "discount-percent-first",
                "name": "name / 割引 / NN% / price / -amount",
                "type": "multi-line",
                "line_count": 5,
                "line_patterns": [
                    _DISCOUNT_NAME,
                    _DISCOUNT_MARK,
                    _DISCOUNT_PERCENT,
                    _DISCOUNT_PRICE,
                    _DISCOUNT_AMOUNT,
                ],
                "confidence": 0.9,
                "extraction_rules": [
                    _group("name", 1, 0),
                    _group("discount_percent", 1, 2),
                    _group("price", 1, 3),
                    _group("discount_amount", 1, 4),
                ],
                "validation_rules": [
                    {"field": "name", "kind": "length", "min": 2, "max": 40},
                    {"field": "price", "kind": "range", "min": 1, "max": 99999},
                ],
            },
            {
                "id": "discount-price-first",
                "name": "name / 割引 / price / NN% / -amount",
                "type": "multi-line",
                "line_count": 5,
                "line_patterns": [
                    _DISCOUNT_NAME,
                    _DISCOUNT_MARK,
                    _DISCOUNT_PRICE,
                    _DISCOUNT_PERCENT,
                    _DISCOUNT_AMOUNT,
                ],
                "confidence": 0.9,
                "extraction_rules": [
                    _group("name", 1, 0),
                    _group("price", 1, 2),
                    _group("discount_percent", 1, 3),
                    _group("discount_amount", 1, 4),
                ],
                "validation_rules": [
                    {"field": "name", "kind": "length", "min": 2, "max": 40},
                    {"field": "price", "kind": "range", "min": 1, "max": 99999},
                ],
            },
        ],
    },
    {
        "id": "supermarket-asterisk",
        "name": "Asterisk-marked items",
        "description": "*name ¥price on one line, or *name then ¥price",
        "priority": 90,
        "enabled": True,
        "confidence": 0.85,
        "store_identifiers": ["life"],
        "sub_patterns": [
            {
                "id": "asterisk-inline",
                "name": "*name ¥price",
                "type": "single-line",
                "regex": r'^\*\s*(.+?)\s+[¥￥]\s*([\d,]{1,7})$',
                "confidence": 0.85,
                "extraction_rules": [_group("name", 1), _group("price", 2)],
                "validation_rules": [
                    {"field": "price", "kind": "range", "min": 1, "max": 99999},
                ],
            },
            {
                "id": "asterisk-2line",
                "name": "*name / ¥price",
                "type": "multi-line",
                "line_count": 2,
                "line_patterns": [r'^\*\s*(.+)$', r'^[¥￥]\s*([\d,]{1,7})$'],
                "confidence": 0.85,
                "extraction_rules": [_group("name", 1, 0), _group("price", 1, 1)],
                "validation_rules": [
                    {"field": "price", "kind": "range", "min": 1, "max": 99999},
                ],
            },
        ],
    },
    {
        "id": "cafe-quantity",
        "name": "Cafe quantity lines",
        "description": "name then '2コX単150 ¥300'",
        "priority": 85,
        "enabled": True,
        "confidence": 0.85,
        "store_identifiers": ["cafe"],
        "sub_patterns": [
            {
                "id": "cafe-qty-2line",
                "name": "name / qty × unit price",
                "type": "multi-line",
                "line_count": 2,
                "line_patterns": [
                    r'^(?:[A-Z]\s+)?\*?(.{2,40})$',
                    r'^(\d{1,2})\s*コ\s*[X×xｘ]\s*単\s*([\d,]+)\s+[¥￥]?\s*([\d,]+)$',
                ],
                "confidence": 0.85,
                "extraction_rules": [
                    _group("name", 1, 0),
                    _group("quantity", 1, 1),
                    _group("unit_price", 2, 1),
                    _group("price", 3, 1),
                ],
            },
        ],
    },
    {
        "id": "yen-inline",
        "name": "Name + yen price",
        "description": "name ¥price on one line, any store",
        "priority": 80,
        "enabled": True,
        "confidence": 0.85,
        "store_identifiers": [],
        "sub_patterns": [
            {
                "id": "yen-inline-basic",
                "name": "name ¥price",
                "type": "single-line",
                "regex": r'^(.+?)\s*[¥￥]\s*([\d,]{1,7})\s*[TE※*]?$',
                "confidence": 0.85,
                "extraction_rules": [_group("name", 1), _group("price", 2)],
                "validation_rules": [
                    {"field": "name", "kind": "pattern", "pattern": _NAME_HAS_LETTERS},
                    {"field": "price", "kind": "range", "min": 1, "max": 999999},
                ],
            },
        ],
    },
    {
        "id": "usd-inline",
        "name": "Name + dollar price",
        "description": "name $12.34 on one line, any store",
        "priority": 75,
        "enabled": True,
        "confidence": 0.8,
        "store_identifiers": [],
        "sub_patterns": [
            {
                "id": "usd-inline-basic",
                "name": "name $price",
                "type": "single-line",
                "regex": r'^(.+?)\s+\$\s*(\d{1,5}\.\d{2})\s*[TNX]?$',
                "confidence": 0.8,
                "extraction_rules": [_group("name", 1), _group("price", 2)],
                "validation_rules": [
                    {"field": "name", "kind": "pattern", "pattern": _NAME_HAS_LETTERS},
                ],
            },
        ],
    },
    {
        "id": "convenience-standard",
        "name": "Convenience store inline",
        "description": "name price on one line",
        "priority": 70,
        "enabled": True,
        "confidence": 0.75,
        "store_identifiers": ["seven-eleven"],
        "sub_patterns": [
            {
                "id": "convenience-inline",
                "name": "name price",
                "type": "single-line",
                "regex": r'^(.{2,30}?)\s+[¥￥]?([\d,]{2,5})\s*[軽※*]?$',
                "confidence": 0.75,
                "extraction_rules": [_group("name", 1), _group("price", 2)],
                "validation_rules": [
                    {"field": "name", "kind": "length", "min": 2, "max": 30},
                    {"field": "name", "kind": "pattern", "pattern": _NAME_HAS_LETTERS},
                    {"field": "price", "kind": "range", "min": 10, "max": 9999},
                ],
            },
        ],
    },
    {
        "id": "supermarket-general",
        "name": "Name then price line",
        "description": "product name with its price on the following line",
        "priority": 60,
        "enabled": True,
        "confidence": 0.7,
        "store_identifiers": ["aeon", "peacock"],
        "sub_patterns": [
            {
                "id": "name-next-price",
                "name": "name / price",
                "type": "context-aware",
                "regex": r'^(?![¥￥\d\s,]+$).{2,40}$',
                "context_rules": [
                    {"type": "next-line", "pattern": r'^[¥￥]?\s*([\d,]{1,6})\s*[*※TE]?$', "required": True},
                ],
                "confidence": 0.7,
                "extraction_rules": [_line("name", 0), _group("price", 1, 1)],
                "validation_rules": [
                    {"field": "name", "kind": "pattern", "pattern": _NAME_HAS_LETTERS},
                    {"field": "price", "kind": "range", "min": 1, "max": 99999},
                ],
            },
        ],
    },
    {
        "id": "generic-price",
        "name": "Generic name + number",
        "description": "last resort catalog rule: name followed by a bare number",
        "priority": 50,
        "enabled": True,
        "confidence": 0.5,
        "store_identifiers": [],
        "sub_patterns": [
            {
                "id": "generic-inline",
                "name": "name number",
                "type": "single-line",
                "regex": r'^(.+?)\s+([\d,]{2,6})\s*$',
                "confidence": 0.5,
                "extraction_rules": [_group("name", 1), _group("price", 2)],
                "validation_rules": [
                    {"field": "name", "kind": "pattern", "pattern": _NAME_HAS_LETTERS},
                    {"field": "price", "kind": "range", "min": 1, "max": 99999},
                ],
            },
        ],
    },
]


# ─── Templates ────────────────────────────────────────────────────────────────

PATTERN_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "single-line": {
        "id": "new-single-line",
        "name": "New single-line rule",
        "priority": 50,
        "enabled": True,
        "confidence": 0.7,
        "store_identifiers": [],
        "sub_patterns": [{
            "id": "new-single-line-main",
            "name": "name price",
            "type": "single-line",
            "regex": r'^(.+?)\s+(\d+)$',
            "confidence": 0.7,
            "extraction_rules": [_group("name", 1), _group("price", 2)],
        }],
    },
    "multi-line": {
        "id": "new-multi-line",
        "name": "New multi-line rule",
        "priority": 50,
        "enabled": True,
        "confidence": 0.7,
        "store_identifiers": [],
        "sub_patterns": [{
            "id": "new-multi-line-main",
            "name": "name / price",
            "type": "multi-line",
            "line_count": 2,
            "line_patterns": [r'^(.+)$', r'^(\d+)$'],
            "confidence": 0.7,
            "extraction_rules": [_group("name", 1, 0), _group("price", 1, 1)],
        }],
    },
}
