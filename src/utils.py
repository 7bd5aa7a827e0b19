"""
Utility functions for receipt line-item extraction
"""

import os
import re
import sys
import unicodedata
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from receipt_models import Currency


# ─── Shared patterns ──────────────────────────────────────────────────────────

_YEN_MARK = re.compile(r'[¥￥円]')
_USD_MARK = re.compile(r'\$|\bUSD\b', re.IGNORECASE)
_EUR_MARK = re.compile(r'€|\bEUR\b', re.IGNORECASE)
_TWO_DECIMALS = re.compile(r'(?<![\d.])\d+\.\d{2}(?![\d.])')

_AMOUNT = re.compile(r'-?\d[\d,]*(?:\.\d+)?')
_AMOUNT_NOISE = re.compile(r'[¥￥$€円\s]')
_TAX_SUFFIX = re.compile(r'[TEXtex※*]+$')
_OCR_NUMERIC = re.compile(r'^[\dOoIl,.]+$')

_EDGE_NOISE = re.compile(r'^[\s*＊・•\-_=#:;|>]+|[\s*＊・•\-_=#:;|<]+$')
_MULTI_SPACE = re.compile(r'\s+')
_DIGITS_ONLY = re.compile(r'^[\d\s,.\-]+$')
_ENGLISH_PRODUCT = re.compile(r"^[A-Za-z0-9\s\-'&./]+$")
_JAPANESE = re.compile(r'[぀-ゟ゠-ヿ一-鿿]')

# Totals, tax, tender and change lines never describe a purchased product
_SUMMARY_LINE = re.compile(
    r'(合\s*計|小\s*計|総\s*計|税込|税抜|消費税|内税|外税|対象計|'
    r'お釣り?|おつり|釣銭|お預り|お預かり|預り金|現\s*金|'
    r'クレジット|領収|点数|買上|割引|値引|'
    r'\bSUB\s*TOTAL\b|\bTOTAL\b|\bTAX\b|\bCHANGE\b|\bCASH\b|'
    r'\bBALANCE\b|\bTENDER(?:ED)?\b|\bAMOUNT\s+DUE\b|\bVISA\b|\bMASTERCARD\b)',
    re.IGNORECASE,
)


# ─── Currency and money ───────────────────────────────────────────────────────

def detect_currency(text: str) -> Currency:
    """
    Detect the receipt currency from symbols or two-decimal literals.

    ¥ / ￥ / 円 → JPY, $ / USD → USD, € / EUR → EUR, "12.34" → USD,
    anything else → JPY.
    """
    if not text:
        return Currency.JPY
    if _YEN_MARK.search(text):
        return Currency.JPY
    if _USD_MARK.search(text):
        return Currency.USD
    if _EUR_MARK.search(text):
        return Currency.EUR
    if _TWO_DECIMALS.search(text):
        return Currency.USD
    return Currency.JPY


def parse_amount(text: Any) -> Optional[Decimal]:
    """
    Parse a price token such as "1,000 T", "¥228", "$12.34" or "1O5".

    Returns None when no number can be recovered.
    """
    if text is None:
        return None
    if isinstance(text, Decimal):
        return text
    if isinstance(text, (int, float)):
        return Decimal(str(text))

    s = _AMOUNT_NOISE.sub('', str(text))
    s = _TAX_SUFFIX.sub('', s)
    if _OCR_NUMERIC.match(s):
        s = s.replace('O', '0').replace('o', '0').replace('I', '1').replace('l', '1')
    m = _AMOUNT.search(s)
    if not m:
        return None
    try:
        return Decimal(m.group(0).replace(',', ''))
    except InvalidOperation:
        return None


def format_price(value: Optional[Decimal], currency: Currency) -> Optional[Decimal]:
    """Round to the currency's minor unit (JPY integer, others cents)."""
    if value is None:
        return None
    step = Decimal('1') if currency == Currency.JPY else Decimal('0.01')
    return Decimal(value).quantize(step, rounding=ROUND_HALF_UP)


# ─── Names ────────────────────────────────────────────────────────────────────

def clean_item_name(name: str) -> str:
    """Strip edge noise symbols (asterisks, bullets, dashes) and collapse spaces."""
    if not name:
        return ""
    cleaned = _EDGE_NOISE.sub('', name)
    return _MULTI_SPACE.sub(' ', cleaned).strip()


def is_digits_only(name: str) -> bool:
    return bool(name) and bool(_DIGITS_ONLY.match(name))


def is_symbols_only(name: str) -> bool:
    return bool(name.strip()) and not any(ch.isalnum() for ch in name)


def special_char_ratio(name: str) -> float:
    compact = name.replace(' ', '')
    if not compact:
        return 0.0
    special = sum(1 for ch in compact if not ch.isalnum())
    return special / len(compact)


def looks_like_product_name(name: str) -> bool:
    """Japanese script, or a plain latin product name of 3+ characters."""
    if not name:
        return False
    if _JAPANESE.search(name):
        return True
    return (
        len(name) >= 3
        and bool(_ENGLISH_PRODUCT.match(name))
        and any(ch.isalpha() for ch in name)
    )


def is_summary_line(text: str) -> bool:
    """Totals / tax / payment / change lines."""
    if not text:
        return False
    folded = unicodedata.normalize('NFKC', text)
    return bool(_SUMMARY_LINE.search(folded))


# ─── Config / filesystem / logging ────────────────────────────────────────────

def deep_merge(base: Dict, override: Optional[Dict]) -> Dict:
    """Recursively merge `override` into a copy of `base`."""
    merged = dict(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def ensure_directory(dir_path: str) -> str:
    """
    Ensure directory exists, create if it doesn't

    Args:
        dir_path: Directory path

    Returns:
        Absolute path to directory
    """
    path = Path(dir_path)
    path.mkdir(parents=True, exist_ok=True)
    return str(path.absolute())


def format_processing_time(milliseconds: float) -> str:
    """Human-readable duration for log lines."""
    if milliseconds < 1000:
        return f"{milliseconds:.0f}ms"
    return f"{milliseconds / 1000:.2f}s"


def setup_logging(log_file: str = "logs/receipt_extraction.log", level: str = "INFO"):
    """
    Setup logging configuration

    Args:
        log_file: Path to log file (None disables the file sink)
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    # Remove default handler
    logger.remove()

    # Add console handler
    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level=level
    )

    # Add file handler
    if log_file:
        ensure_directory(os.path.dirname(log_file) or ".")
        logger.add(
            log_file,
            rotation="10 MB",
            retention="30 days",
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"
        )

    logger.info("Logging initialized")
