"""
Patterns package - declarative extraction rules and the catalog that holds them.

Usage
-----
from patterns import PatternCatalog
catalog = PatternCatalog()
rules   = catalog.applicable_for("warehouse")
"""

from patterns.catalog import PatternCatalog
from patterns.definitions import PatternConfig, validate_pattern
from patterns.matcher import PatternMatcher

__all__ = ["PatternCatalog", "PatternConfig", "PatternMatcher", "validate_pattern"]
