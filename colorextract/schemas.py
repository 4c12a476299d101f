"""
colorextract Schemas
Pydantic models for extraction options and results.
"""
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from colorextract.config import config


class Quality(str, Enum):
    """Extraction quality; maps to a sample step and bucket precision."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class QuantizationOptions(BaseModel):
    """Options controlling sampling, bucketing and palette size."""
    model_config = ConfigDict(frozen=True)

    quality: Quality = Field(
        Quality(config.DEFAULT_QUALITY),
        description="Sampling quality (higher = denser sampling, finer buckets)"
    )
    max_colors: int = Field(
        config.DEFAULT_MAX_COLORS,
        ge=1,
        le=64,
        description="Maximum number of colors in the merged palette"
    )
    min_population: int = Field(
        0,
        ge=0,
        description="Buckets with fewer sampled pixels are dropped before ranking"
    )
    ignore_white: bool = Field(False, description="Skip near-white pixels while sampling")
    ignore_black: bool = Field(False, description="Skip near-black pixels while sampling")
    max_dimension: int = Field(
        config.MAX_DIMENSION,
        ge=1,
        le=8192,
        description="Longest edge after downscaling"
    )
    region_count: int = Field(
        config.REGION_COUNT,
        ge=1,
        le=64,
        description="Number of regions quantized independently"
    )
    dedup_threshold: int = Field(
        config.DEDUP_THRESHOLD,
        ge=0,
        le=255,
        description="Per-channel distance under which two colors are merged"
    )


class HSLColor(BaseModel):
    """HSL triple with integer degrees and percentages."""
    h: int = Field(..., ge=0, lt=360)
    s: int = Field(..., ge=0, le=100)
    l: int = Field(..., ge=0, le=100)


class ExtractedColor(BaseModel):
    """Single palette entry with its share of sampled pixels."""
    rgb: Tuple[int, int, int] = Field(..., description="Quantized RGB triple")
    hex: str = Field(
        ...,
        pattern=r"^#[0-9A-Fa-f]{6}$",
        description="Hex color code in format #RRGGBB"
    )
    hsl: HSLColor
    count: int = Field(..., ge=0, description="Sampled pixels in this bucket")
    dominance: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="count / total sampled non-transparent pixels"
    )


class ImageSize(BaseModel):
    """Width and height in pixels."""
    width: int = Field(..., ge=0)
    height: int = Field(..., ge=0)


class ExtractionMetadata(BaseModel):
    """Bookkeeping about how a palette was produced."""
    original_size: ImageSize
    processed_size: ImageSize
    quality: Quality
    processing_time_ms: float = Field(..., ge=0.0)
    color_count: int = Field(0, ge=0)
    sampled_pixels: int = Field(0, ge=0)
    region_count: int = Field(0, ge=0)
    request_id: Optional[str] = None
    from_cache: bool = False
    degraded: bool = Field(False, description="True when the default palette was substituted")
    fallback_reason: Optional[str] = None


class ExtractionResult(BaseModel):
    """Extraction response."""
    colors: List[ExtractedColor]
    metadata: ExtractionMetadata


class HealthResponse(BaseModel):
    """Health check response."""
    ok: bool = Field(True, description="Service health status")
    version: str = Field(..., description="Service version")
    service: str = Field("colorextract", description="Service name")


class ErrorDetail(BaseModel):
    """Structured error body."""
    code: str
    message: str


class ErrorResponse(BaseModel):
    """Error response."""
    detail: ErrorDetail
