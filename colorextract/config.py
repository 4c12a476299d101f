"""
colorextract Configuration
Manages environment variables and defaults for the extraction engine.
"""
import os
from typing import Literal


class Config:
    """Configuration class for the color extraction engine."""

    # Input limits
    MAX_FILE_MB: int = int(os.environ.get("COLOREXTRACT_MAX_FILE_MB", "10"))
    MAX_DIMENSION: int = int(os.environ.get("COLOREXTRACT_MAX_DIMENSION", "2048"))

    # Quantization defaults
    REGION_COUNT: int = int(os.environ.get("COLOREXTRACT_REGION_COUNT", "4"))
    MAX_BINS_PER_REGION: int = int(os.environ.get("COLOREXTRACT_MAX_BINS_PER_REGION", "20"))
    DEDUP_THRESHOLD: int = int(os.environ.get("COLOREXTRACT_DEDUP_THRESHOLD", "30"))
    DEFAULT_MAX_COLORS: int = int(os.environ.get("COLOREXTRACT_DEFAULT_MAX_COLORS", "6"))
    DEFAULT_QUALITY: Literal["low", "medium", "high"] = os.environ.get("COLOREXTRACT_DEFAULT_QUALITY", "medium")

    # Worker boundary
    EXECUTOR: Literal["thread", "process", "sync"] = os.environ.get("COLOREXTRACT_EXECUTOR", "thread")
    MAX_WORKERS: int = int(os.environ.get("COLOREXTRACT_MAX_WORKERS", "4"))
    SYNC_CHUNK_ROWS: int = int(os.environ.get("COLOREXTRACT_SYNC_CHUNK_ROWS", "64"))

    # Timeouts (milliseconds)
    QUANTIZATION_TIMEOUT_MS: int = int(os.environ.get("COLOREXTRACT_QUANTIZATION_TIMEOUT_MS", "5000"))
    SYNC_RETRY_TIMEOUT_MS: int = int(os.environ.get("COLOREXTRACT_SYNC_RETRY_TIMEOUT_MS", "10000"))

    # Result cache
    CACHE_MAX_ENTRIES: int = int(os.environ.get("COLOREXTRACT_CACHE_MAX_ENTRIES", "64"))
    CACHE_TTL_SECONDS: int = int(os.environ.get("COLOREXTRACT_CACHE_TTL_SECONDS", "0"))  # 0 = never expires
    POLICY_VERSION: str = os.environ.get("COLOREXTRACT_POLICY_VERSION", "1.0.0")

    # Memory pressure checks before preprocessing
    MEMORY_MONITOR: bool = os.environ.get("COLOREXTRACT_MEMORY_MONITOR", "true").lower() == "true"

    # Memory pressure thresholds (fraction of system memory in use)
    MEMORY_WARNING: float = float(os.environ.get("COLOREXTRACT_MEMORY_WARNING", "0.75"))
    MEMORY_CRITICAL: float = float(os.environ.get("COLOREXTRACT_MEMORY_CRITICAL", "0.90"))
    MEMORY_EMERGENCY: float = float(os.environ.get("COLOREXTRACT_MEMORY_EMERGENCY", "0.95"))

    # Logging
    LOG_LEVEL: str = os.environ.get("COLOREXTRACT_LOG_LEVEL", "INFO")

    # Supported image formats
    SUPPORTED_MIME_TYPES = ["image/jpeg", "image/jpg", "image/png", "image/webp"]

    @classmethod
    def max_file_bytes(cls) -> int:
        """Hard cap on input size in bytes."""
        return cls.MAX_FILE_MB * 1024 * 1024

    @classmethod
    def validate_executor(cls, executor: str) -> bool:
        """Validate executor parameter."""
        return executor in ["thread", "process", "sync"]

    @classmethod
    def validate_mime_type(cls, mime_type: str) -> bool:
        """Validate MIME type against supported formats."""
        return (mime_type or "").lower() in cls.SUPPORTED_MIME_TYPES


# Global config instance
config = Config()
