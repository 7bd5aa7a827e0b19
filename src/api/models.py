"""
API Models - Request and Response schemas
Using Pydantic for automatic validation and documentation

Pattern definitions travel as plain dicts and are validated by the
catalog itself, so an invalid rule comes back as 422 with the offending
field name rather than FastAPI's generic body error.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any


# ─── Extraction Models ────────────────────────────────────────────────────────

class ExtractOptions(BaseModel):
    """Per-request pipeline knobs."""
    confidence_threshold: float = Field(0.3,  description="Minimum stage confidence", ge=0, le=1)
    max_processing_time_ms: int = Field(5000, description="Pipeline time budget", gt=0)
    enable_fallback: bool       = Field(True, description="Allow the generic fallback stage")


class ExtractRequest(BaseModel):
    """Receipt text to extract items from."""
    text: str                          = Field(..., description="OCR text, newline separated")
    options: Optional[ExtractOptions]  = Field(None, description="Pipeline options")

    class Config:
        json_schema_extra = {
            "example": {
                "text": "コストコ\nUGG ANSLEY\n1201345\n1\n5,966\n5,966 T",
                "options": {"confidence_threshold": 0.3, "enable_fallback": True},
            }
        }


class ItemResponse(BaseModel):
    """One extracted line item."""
    name: str                 = Field(..., description="Normalized product name")
    price: Optional[float]    = Field(None, description="Price in the receipt currency")
    quantity: int             = Field(1,   description="Quantity")
    currency: str             = Field("JPY", description="JPY | USD | EUR")
    confidence: float         = Field(..., description="Item confidence (0-1)", ge=0, le=1)
    category: str             = Field("other", description="Inferred product category")
    source_pattern: str       = Field("", description="Sub-pattern or stage that produced the item")
    line_numbers: List[int]   = Field(default_factory=list, description="Source line indexes")
    raw_text: str             = Field("", description="Source text")
    metadata: Dict[str, Any]  = Field(default_factory=dict, description="tax_type, product_code, unit, ...")


class ExtractResponse(BaseModel):
    """Result of a pattern-engine extraction."""
    status: str               = Field("success", description="Response status")
    pattern_id: str           = Field(..., description="Rule that produced most items, or 'no-match'")
    confidence: float         = Field(..., description="Overall confidence", ge=0, le=1)
    items: List[ItemResponse] = Field(..., description="Extracted items")
    metadata: Dict[str, Any]  = Field(
        ...,
        description=(
            "processing_time_ms, store_type, pattern_used, fallback_used, "
            "patterns_attempted, stages, corrections, rejected_items, quality."
        ),
    )


class HybridRequest(BaseModel):
    """Receipt text plus an optional document for the external service."""
    text: str                           = Field(..., description="OCR text, newline separated")
    document: Optional[Dict[str, Any]]  = Field(None, description="Payload forwarded to the document service")


class HybridResponse(BaseModel):
    """Result of the hybrid strategy."""
    success: bool             = Field(..., description="False only when both sources failed")
    confidence: float         = Field(..., description="Overall confidence", ge=0, le=1)
    items: List[ItemResponse] = Field(..., description="Extracted items")
    metadata: Dict[str, Any]  = Field(
        ...,
        description="processing_time_ms, primary_method, fallback_used, quality_score, suspicious_patterns, methods_used.",
    )


# ─── Pattern Catalog Models ───────────────────────────────────────────────────

class PatternListResponse(BaseModel):
    total: int                     = Field(..., description="Number of rules")
    patterns: List[Dict[str, Any]] = Field(..., description="Rules, highest priority first")


class DuplicateRequest(BaseModel):
    new_id: str             = Field(..., description="Id of the copy")
    new_name: Optional[str] = Field(None, description="Name of the copy")


class PatternTestRequest(BaseModel):
    pattern: Dict[str, Any] = Field(..., description="Candidate rule definition")
    text: str               = Field(..., description="Sample receipt text")


class ImportResponse(BaseModel):
    status: str   = Field("success", description="Response status")
    imported: int = Field(..., description="Rules imported")
    total: int    = Field(..., description="Rules in the catalog afterwards")


# ─── Health & Error Models ────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    """Health check response."""
    status: str   = Field("healthy",                  description="Health status")
    service: str  = Field("receipt-item-extractor",   description="Service name")
    version: str  = Field("1.0.0",                    description="API version")


class ErrorResponse(BaseModel):
    """Error response."""
    status: str           = Field("error", description="Response status")
    error: str            = Field(...,     description="Error type")
    message: str          = Field(...,     description="Error message")
    field: Optional[str]  = Field(None,    description="Offending field of a rule definition")
