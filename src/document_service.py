"""
External Document Service
=========================
Client side of the structured-document extraction service consulted by the
hybrid merger.

The service answers with a Document-AI style payload:

    {
      "text": "<full receipt text>",
      "entities": [
        {
          "type": "line_item",
          "confidence": 0.93,
          "properties": [
            {"type": "line_item/description", "mentionText": "Milk"},
            {"type": "line_item/amount",      "mentionText": "¥198"},
            {"type": "line_item/quantity",    "mentionText": "2"}
          ]
        }
      ]
    }

A property may carry its text as `mentionText` or as a `textAnchor` whose
`textSegments` index into the document text.
"""

import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import httpx
from loguru import logger

from extraction_errors import ExternalServiceError
from receipt_models import Currency, ExtractedItem
from utils import detect_currency, format_price, parse_amount


DocumentInput = Union[str, Dict[str, Any]]

_DIGITS = re.compile(r'\d+')


@dataclass
class DocumentServiceResult:
    success: bool
    text: str = ""
    items: List[ExtractedItem] = field(default_factory=list)
    confidence: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)


class DocumentService(ABC):
    """Anything that turns a receipt document into line items."""

    name = "document-service"

    @abstractmethod
    async def extract(self, document: DocumentInput) -> DocumentServiceResult:
        """Raise ExternalServiceError on any failure."""


# ─── Payload parsing ──────────────────────────────────────────────────────────

def _anchor_text(prop: Dict[str, Any], full_text: str) -> str:
    if prop.get("mentionText"):
        return str(prop["mentionText"])
    segments = (prop.get("textAnchor") or {}).get("textSegments") or []
    parts = []
    for seg in segments:
        start = int(seg.get("startIndex", 0) or 0)
        end = int(seg.get("endIndex", 0) or 0)
        parts.append(full_text[start:end])
    return "".join(parts)


def _parse_quantity(text: str) -> int:
    m = _DIGITS.search(text or "")
    quantity = int(m.group()) if m else 1
    return quantity if quantity > 0 else 1


def parse_line_item(entity: Dict[str, Any], full_text: str, currency: Currency) -> Optional[ExtractedItem]:
    """One `line_item` entity → ExtractedItem, or None when name / price are unusable."""
    name, price_text, quantity = "", "", 1
    for prop in entity.get("properties") or []:
        text = _anchor_text(prop, full_text)
        kind = prop.get("type")
        if kind == "line_item/description":
            name = text.strip()
        elif kind == "line_item/amount":
            price_text = text
        elif kind == "line_item/quantity":
            quantity = _parse_quantity(text)

    price = parse_amount(price_text)
    if len(name) < 2 or price is None or price <= 0:
        return None
    return ExtractedItem(
        name=name,
        price=format_price(price, currency),
        quantity=quantity,
        currency=currency,
        confidence=float(entity.get("confidence") or 0.5),
        source_pattern="external",
        raw_text=f"{name} | {price_text.strip()} | {quantity}",
    )


def parse_document(payload: Dict[str, Any]) -> DocumentServiceResult:
    """Turn a Document-AI style payload into a DocumentServiceResult."""
    document = payload.get("document", payload)
    full_text = document.get("text") or ""
    entities = document.get("entities") or []
    currency = detect_currency(full_text)

    items = []
    for entity in entities:
        if entity.get("type") != "line_item":
            continue
        item = parse_line_item(entity, full_text, currency)
        if item is not None:
            items.append(item)

    confidences = [float(e.get("confidence") or 0) for e in entities]
    confidences = [c for c in confidences if c > 0]
    if not entities:
        confidence = 0.0
    elif not confidences:
        confidence = 0.5
    else:
        confidence = sum(confidences) / len(confidences)

    return DocumentServiceResult(
        success=True,
        text=full_text,
        items=items,
        confidence=confidence,
        metadata={"entities": len(entities), "currency": currency.value},
    )


# ─── HTTP client ──────────────────────────────────────────────────────────────

class HttpDocumentService(DocumentService):
    """
    POSTs {"content": <text>} to `endpoint` and parses the reply.

    Usage
    -----
    service = HttpDocumentService("https://docs.example/v1/process", api_key="...")
    result  = await service.extract(text)
    """

    name = "http-document-service"

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_config(cls, config: Dict[str, Any], timeout: float = 30.0) -> Optional["HttpDocumentService"]:
        """Build from the `document_service` config section; None when no endpoint is set."""
        endpoint = config.get("endpoint")
        if not endpoint:
            return None
        api_key = os.environ.get(config.get("api_key_env") or "DOCUMENT_SERVICE_API_KEY")
        return cls(endpoint, api_key=api_key, timeout=timeout)

    async def extract(self, document: DocumentInput) -> DocumentServiceResult:
        content = document.get("content", "") if isinstance(document, dict) else document
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.endpoint, headers=headers, json={"content": content})
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"request to {self.endpoint} failed: {e}") from e

        if response.status_code != 200:
            raise ExternalServiceError(
                f"document service returned {response.status_code}: {response.text[:200]}"
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise ExternalServiceError("document service returned invalid JSON") from e
        if not isinstance(payload, dict):
            raise ExternalServiceError("document service returned an unexpected payload")

        result = parse_document(payload)
        logger.info(
            f"[HttpDocumentService] {len(result.items)} items "
            f"(confidence {result.confidence:.2f}) from {result.metadata['entities']} entities"
        )
        return result
