"""
colorextract v1 API Routes
Palette extraction and cache management endpoints.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from loguru import logger

from colorextract.config import config
from colorextract.errors import (
    DecodeError,
    ExtractionCancelled,
    ExtractionError,
    QuantizationTimeout,
    ResourceUnavailableError,
    UnsupportedMediaError,
    ValidationError,
)
from colorextract.schemas import ErrorResponse, ExtractionResult, Quality, QuantizationOptions
from colorextract.services.imaging import ImageSource
from colorextract.services.observability.metrics import get_metrics_collector
from colorextract.services.orchestrator import ExtractionOrchestrator

router = APIRouter(prefix="/v1", tags=["Palette extraction"])

# Most specific classes first
ERROR_STATUS = (
    (UnsupportedMediaError, 415),
    (ValidationError, 400),
    (DecodeError, 422),
    (ResourceUnavailableError, 503),
    (QuantizationTimeout, 504),
    (ExtractionCancelled, 409),
)

ERROR_RESPONSES = {
    status: {"model": ErrorResponse} for status in (400, 415, 422, 409, 500, 503, 504)
}


def status_for_error(error: ExtractionError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def get_orchestrator(request: Request) -> ExtractionOrchestrator:
    return request.app.state.orchestrator


@router.post("/palette/extract",
             response_model=ExtractionResult,
             responses=ERROR_RESPONSES,
             summary="Extract color palette",
             description="Quantize an uploaded image into its dominant colors")
async def extract_palette(
    file: UploadFile = File(..., description="Image file (JPEG, PNG or WebP)"),
    quality: Quality = Query(Quality(config.DEFAULT_QUALITY), description="Sampling quality"),
    max_colors: int = Query(config.DEFAULT_MAX_COLORS, ge=1, le=64, description="Maximum colors returned"),
    min_population: int = Query(0, ge=0, description="Drop buckets with fewer pixels"),
    ignore_white: bool = Query(False, description="Skip near-white pixels"),
    ignore_black: bool = Query(False, description="Skip near-black pixels"),
    max_dimension: int = Query(config.MAX_DIMENSION, ge=1, le=8192, description="Downscale bound"),
    region_count: int = Query(config.REGION_COUNT, ge=1, le=64, description="Regions quantized in parallel"),
    dedup_threshold: int = Query(config.DEDUP_THRESHOLD, ge=0, le=255, description="Duplicate distance"),
    best_effort: bool = Query(False, description="Serve a default palette on failure"),
    use_cache: bool = Query(True, description="Allow cache usage"),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> ExtractionResult:
    options = QuantizationOptions(
        quality=quality,
        max_colors=max_colors,
        min_population=min_population,
        ignore_white=ignore_white,
        ignore_black=ignore_black,
        max_dimension=max_dimension,
        region_count=region_count,
        dedup_threshold=dedup_threshold,
    )

    data = await file.read()
    source = ImageSource.from_bytes(data, mime_type=file.content_type or "")

    try:
        # Unslotted, so concurrent uploads never supersede each other
        return await orchestrator.extract(
            source,
            options,
            slot=None,
            best_effort=best_effort,
            use_cache=use_cache,
        )
    except ExtractionError as e:
        status = status_for_error(e)
        logger.warning(f"Extraction request failed with {status}: {e.code}")
        raise HTTPException(status_code=status, detail=e.to_dict())


@router.get("/palette/cache", summary="Result cache statistics")
async def get_cache_stats(orchestrator: ExtractionOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return orchestrator.cache_stats()


@router.delete("/palette/cache", summary="Clear the result cache")
async def clear_cache(orchestrator: ExtractionOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    orchestrator.clear_cache()
    return {"ok": True, **orchestrator.cache_stats()}


@router.get("/metrics", summary="Pipeline performance metrics")
async def get_metrics(limit: int = Query(10, ge=0, le=100, description="Recent samples to include")) -> Dict[str, Any]:
    collector = get_metrics_collector()
    return {
        **collector.get_all_stats(),
        "quantize": collector.get_operation_stats("quantize"),
        "recent": collector.get_recent_metrics(limit) if limit else [],
    }
