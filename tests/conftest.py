"""
Shared fixtures
"""

import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from receipt_models import Currency, ExtractedItem


@pytest.fixture
def make_item():
    """Factory for ExtractedItem with sensible defaults"""
    def _make(name="Milk", price=200, **kwargs):
        kwargs.setdefault("confidence", 0.8)
        kwargs.setdefault("currency", Currency.JPY)
        kwargs.setdefault("source_pattern", "yen-inline-basic")
        kwargs.setdefault("line_numbers", (0,))
        return ExtractedItem(name=name, price=price, **kwargs)
    return _make
