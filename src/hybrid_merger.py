"""
Hybrid Merger
=============
Reconciles the external document service with the local pattern engine.

    1. ask the external service (time-boxed)
    2. score its result:  0.4 × confidence
                        + 0.3 × min(items / 3, 1)
                        + 0.2 × share of items above 0.8
                        − 0.1 × min(suspicious patterns, 3)
    3. quality ≥ threshold        → external result as-is
    4. otherwise run the pattern engine on the text
    5. both produced items        → price-keyed merge (best-of-both),
                                     or the preferred side whole
                                     (document-ai-first / pattern-match-first)
       only one produced items    → that one
       neither                    → success=False, no items

A failure on either side is logged and absorbed; the caller only ever sees
the terminal success=False state.
"""

import asyncio
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from loguru import logger

from document_service import DocumentInput, DocumentService, DocumentServiceResult
from extraction_errors import ConfigError, ExternalServiceError
from item_scoring import overall_confidence, quality_score, ratio
from receipt_models import ExtractedItem, ParseResult


PatternEngine = Callable[[str], ParseResult]

_GARBLED = re.compile(r'^[A-Z0-9\s]+$')

# How step 5 settles a receipt where both sides found items
MERGE_STRATEGIES = ("best-of-both", "document-ai-first", "pattern-match-first")


@dataclass
class HybridResult:
    success: bool
    items: List[ExtractedItem] = field(default_factory=list)
    confidence: float = 0.0
    text: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def fallback_used(self) -> bool:
        return bool(self.metadata.get("fallback_used", False))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success":    self.success,
            "confidence": round(self.confidence, 4),
            "items":      [item.to_dict() for item in self.items],
            "metadata":   dict(self.metadata),
        }


# ─── Quality assessment ───────────────────────────────────────────────────────

def is_garbled(name: str) -> bool:
    return "X単" in name or bool(_GARBLED.match(name))


def suspicious_patterns(items: List[ExtractedItem]) -> List[str]:
    found = []
    n = len(items)
    if n < 3:
        found.append("very-few-items")
    incomplete = sum(1 for i in items if len(i.name) < 3 or is_garbled(i.name))
    if n and incomplete > n * 0.3:
        found.append("many-incomplete-names")
    if any(i.quantity > 100 or i.quantity < 1 for i in items):
        found.append("abnormal-quantities")
    if any("\n" in i.name or "\\n" in i.name for i in items):
        found.append("multi-line-names")
    return found


def assess_quality(result: DocumentServiceResult) -> Dict[str, Any]:
    items = result.items
    high = sum(1 for i in items if i.confidence > 0.8)
    suspicious = suspicious_patterns(items)
    return {
        "quality_score": quality_score(result.confidence, len(items), ratio(high, len(items)), len(suspicious)),
        "suspicious_patterns": suspicious,
        "items_detected": len(items),
        "high_confidence_items": high,
    }


def is_high_quality(item: ExtractedItem) -> bool:
    return (
        item.confidence > 0.7
        and len(item.name) >= 2
        and item.has_price
        and not is_garbled(item.name)
    )


def merge_by_price(external: List[ExtractedItem], pattern: List[ExtractedItem]) -> List[ExtractedItem]:
    """
    External items passing the quality bar first, then pattern items at prices
    not yet taken, then every leftover at a price not yet taken.
    """
    merged: List[ExtractedItem] = []
    used: Set[Any] = set()

    def take(item: ExtractedItem, suffix: str):
        merged.append(item.with_changes(source_pattern=f"{item.source_pattern}-{suffix}"))
        used.add(item.price)

    for item in external:
        if is_high_quality(item) and item.price not in used:
            take(item, "external")
    for item in pattern:
        if is_high_quality(item) and item.price not in used:
            take(item, "pattern")
    for item in external + pattern:
        if item.has_price and item.price not in used:
            take(item, "leftover")
    return merged


# ─── Merger ───────────────────────────────────────────────────────────────────

class HybridMerger:
    """
    Usage
    -----
    merger = HybridMerger(service.extract, document_service=HttpDocumentService(url))
    result = await merger.process(text)
    """

    def __init__(
        self,
        pattern_engine: PatternEngine,
        document_service: Optional[DocumentService] = None,
        quality_threshold: float = 0.7,
        timeout: float = 30.0,
        merge_strategy: str = "best-of-both",
    ):
        if merge_strategy not in MERGE_STRATEGIES:
            raise ConfigError(f"must be one of {', '.join(MERGE_STRATEGIES)}", field="merge_strategy")
        self.pattern_engine = pattern_engine
        self.document_service = document_service
        self.quality_threshold = quality_threshold
        self.timeout = timeout
        self.merge_strategy = merge_strategy

    async def process(self, text: str, document: Optional[DocumentInput] = None) -> HybridResult:
        started = time.monotonic()
        methods: List[str] = []

        external: Optional[DocumentServiceResult] = None
        quality: Dict[str, Any] = {"quality_score": 0.0, "suspicious_patterns": []}

        # Step 1-3: external service
        if self.document_service is not None:
            methods.append("external")
            external = await self._call_external(document if document is not None else text)
            if external is not None and external.items:
                quality = assess_quality(external)
                logger.info(
                    f"[HybridMerger] external quality {quality['quality_score']:.2f} "
                    f"(suspicious: {quality['suspicious_patterns'] or 'none'})"
                )
                if quality["quality_score"] >= self.quality_threshold:
                    return self._build(
                        True, external.items, external.confidence, external.text,
                        started, "external", False, quality, methods,
                    )
            else:
                external = None

        # Step 4: pattern engine
        methods.append("pattern")
        pattern = self._call_pattern(text)
        pattern_items = list(pattern.items) if pattern is not None else []

        # Step 5: merge / select
        if external is not None and pattern_items and self.merge_strategy == "document-ai-first":
            return self._build(
                True, external.items, external.confidence, external.text,
                started, "external", True, quality, methods,
            )
        if external is not None and pattern_items and self.merge_strategy == "best-of-both":
            merged = merge_by_price(list(external.items), pattern_items)
            logger.info(f"[HybridMerger] merged {len(external.items)} external + {len(pattern_items)} pattern → {len(merged)}")
            return self._build(
                True, merged, overall_confidence(i.confidence for i in merged), text,
                started, "merged", True, quality, methods,
            )
        if pattern_items:
            return self._build(
                True, pattern_items, pattern.confidence, text,
                started, "pattern", True, quality, methods,
            )
        if external is not None:
            return self._build(
                True, external.items, external.confidence, external.text,
                started, "external", True, quality, methods,
            )

        logger.warning("[HybridMerger] external service and pattern engine both produced nothing")
        return self._build(False, [], 0.0, "", started, "pattern", True, quality, methods)

    async def _call_external(self, document: DocumentInput) -> Optional[DocumentServiceResult]:
        try:
            try:
                return await asyncio.wait_for(self.document_service.extract(document), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                raise ExternalServiceError(f"timed out after {self.timeout}s") from e
        except ExternalServiceError as e:
            logger.warning(f"[HybridMerger] external service failed: {e}")
        except Exception as e:
            logger.warning(f"[HybridMerger] external service raised {type(e).__name__}: {e}")
        return None

    def _call_pattern(self, text: str) -> Optional[ParseResult]:
        try:
            return self.pattern_engine(text)
        except Exception as e:
            logger.warning(f"[HybridMerger] pattern engine raised {type(e).__name__}: {e}")
            return None

    @staticmethod
    def _build(
        success: bool,
        items: List[ExtractedItem],
        confidence: float,
        text: str,
        started: float,
        primary: str,
        fallback_used: bool,
        quality: Dict[str, Any],
        methods: List[str],
    ) -> HybridResult:
        return HybridResult(
            success=success,
            items=list(items),
            confidence=confidence if success else 0.0,
            text=text,
            metadata={
                "processing_time_ms":  round((time.monotonic() - started) * 1000, 2),
                "primary_method":      primary,
                "fallback_used":       fallback_used,
                "quality_score":       quality.get("quality_score", 0.0),
                "suspicious_patterns": list(quality.get("suspicious_patterns", [])),
                "methods_used":        methods,
            },
        )
