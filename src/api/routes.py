"""
API Routes - All API endpoints
Extraction, hybrid extraction and pattern catalog management
"""

from functools import lru_cache
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from loguru import logger

from api.models import (
    DuplicateRequest,
    ErrorResponse,
    ExtractRequest,
    ExtractResponse,
    HybridRequest,
    HybridResponse,
    ImportResponse,
    PatternListResponse,
    PatternTestRequest,
)
from extraction_errors import ConfigError
from extraction_service import ExtractionService
from patterns.defaults import PATTERN_TEMPLATES

# Create router
router = APIRouter()


@lru_cache()
def get_service() -> ExtractionService:
    """Shared extraction service (one catalog per process)."""
    return ExtractionService()


# ==================== UTILITY FUNCTIONS ====================

def config_error(e: ConfigError) -> HTTPException:
    logger.warning(f"Invalid pattern definition: {e}")
    detail = ErrorResponse(error="ConfigError", message=e.message, field=e.field)
    return HTTPException(422, detail=detail.model_dump())


def not_found(e: KeyError) -> HTTPException:
    message = e.args[0] if e.args else "Pattern not found"
    return HTTPException(404, detail=message)


# ==================== EXTRACTION ENDPOINTS ====================

@router.post("/extract", response_model=ExtractResponse, tags=["Extraction"])
async def extract_items(
    request: ExtractRequest,
    service: ExtractionService = Depends(get_service),
):
    """
    **Extract line items from receipt text**

    Runs store classification, the staged pipeline, validation and
    optimization on OCR text.

    **Example:**
    ```bash
    curl -X POST http://localhost:8000/api/v1/extract \\
      -H "Content-Type: application/json" \\
      -d '{"text": "Snack ¥228"}'
    ```
    """
    try:
        options = request.options.model_dump() if request.options else None
        result = service.extract(request.text, options)
        return ExtractResponse(status="success", **result.to_dict())

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error extracting items: {e}")
        raise HTTPException(500, str(e))


@router.post("/extract/hybrid", response_model=HybridResponse, tags=["Extraction"])
async def extract_hybrid(
    request: HybridRequest,
    service: ExtractionService = Depends(get_service),
):
    """
    **Extract with the external document service, reconciled with the pattern engine**

    `success` is false only when neither source produced an item.
    """
    try:
        result = await service.extract_hybrid(request.text, request.document)
        return HybridResponse(**result.to_dict())

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in hybrid extraction: {e}")
        raise HTTPException(500, str(e))


# ==================== PATTERN CATALOG ENDPOINTS ====================

@router.get("/patterns", response_model=PatternListResponse, tags=["Patterns"])
async def list_patterns(service: ExtractionService = Depends(get_service)):
    patterns = service.catalog.list_patterns()
    return PatternListResponse(total=len(patterns), patterns=[p.to_dict() for p in patterns])


@router.post("/patterns", status_code=201, tags=["Patterns"])
async def create_pattern(
    definition: Dict[str, Any] = Body(...),
    service: ExtractionService = Depends(get_service),
):
    try:
        return service.catalog.add(definition).to_dict()
    except ConfigError as e:
        raise config_error(e)


@router.get("/patterns/export", tags=["Patterns"])
async def export_patterns(service: ExtractionService = Depends(get_service)):
    """Export document `{version, export_date, patterns}`."""
    return JSONResponse(service.catalog.export_document())


@router.get("/patterns/stats", tags=["Patterns"])
async def pattern_stats(service: ExtractionService = Depends(get_service)):
    return service.catalog.stats()


@router.get("/patterns/templates", tags=["Patterns"])
async def pattern_templates():
    """Starting points for new single-line and multi-line rules."""
    return PATTERN_TEMPLATES


@router.post("/patterns/import", response_model=ImportResponse, tags=["Patterns"])
async def import_patterns(
    document: Dict[str, Any] = Body(...),
    replace: bool = Query(False, description="Replace the whole catalog instead of merging"),
    service: ExtractionService = Depends(get_service),
):
    """All-or-nothing: one invalid rule rejects the whole document."""
    try:
        imported = service.catalog.import_document(document, replace=replace)
        return ImportResponse(status="success", imported=imported, total=len(service.catalog))
    except ConfigError as e:
        raise config_error(e)


@router.post("/patterns/test", response_model=ExtractResponse, tags=["Patterns"])
async def try_pattern(
    request: PatternTestRequest,
    service: ExtractionService = Depends(get_service),
):
    """Run a candidate rule alone on sample text, without adding it."""
    try:
        result = service.test_pattern(request.pattern, request.text)
        return ExtractResponse(status="success", **result.to_dict())
    except ConfigError as e:
        raise config_error(e)


@router.get("/patterns/{pattern_id}", tags=["Patterns"])
async def get_pattern(pattern_id: str, service: ExtractionService = Depends(get_service)):
    try:
        return service.catalog.get(pattern_id).to_dict()
    except KeyError as e:
        raise not_found(e)


@router.put("/patterns/{pattern_id}", tags=["Patterns"])
async def update_pattern(
    pattern_id: str,
    changes: Dict[str, Any] = Body(...),
    service: ExtractionService = Depends(get_service),
):
    try:
        return service.catalog.update(pattern_id, changes).to_dict()
    except KeyError as e:
        raise not_found(e)
    except ConfigError as e:
        raise config_error(e)


@router.delete("/patterns/{pattern_id}", tags=["Patterns"])
async def delete_pattern(pattern_id: str, service: ExtractionService = Depends(get_service)):
    try:
        removed = service.catalog.delete(pattern_id)
        return {"status": "deleted", "id": removed.id}
    except KeyError as e:
        raise not_found(e)


@router.post("/patterns/{pattern_id}/duplicate", status_code=201, tags=["Patterns"])
async def duplicate_pattern(
    pattern_id: str,
    request: DuplicateRequest,
    service: ExtractionService = Depends(get_service),
):
    try:
        return service.catalog.duplicate(pattern_id, request.new_id, request.new_name).to_dict()
    except KeyError as e:
        raise not_found(e)
    except ConfigError as e:
        raise config_error(e)


@router.post("/patterns/{pattern_id}/toggle", tags=["Patterns"])
async def toggle_pattern(pattern_id: str, service: ExtractionService = Depends(get_service)):
    try:
        return service.catalog.toggle(pattern_id).to_dict()
    except KeyError as e:
        raise not_found(e)
