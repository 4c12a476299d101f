"""
colorextract Error Taxonomy
Structured exceptions surfaced by the extraction pipeline.
"""
from typing import Any, Dict


class ExtractionError(Exception):
    """Base class for all extraction failures."""

    code = "extraction_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Structured representation for API responses and logs."""
        return {"code": self.code, "message": self.message}


class ValidationError(ExtractionError):
    """Input rejected before any work started (type, size, shape)."""

    code = "validation_error"


class UnsupportedMediaError(ValidationError):
    """Input is not one of the supported image types."""

    code = "unsupported_media_type"


class DecodeError(ExtractionError):
    """The image decoder could not produce a pixel buffer."""

    code = "decode_error"


class ResourceUnavailableError(ExtractionError):
    """No quantization context could be obtained for the request."""

    code = "resource_unavailable"


class QuantizationTimeout(ExtractionError):
    """Dispatched quantization produced no response within its budget."""

    code = "quantization_timeout"


class QuantizationError(ExtractionError):
    """A region task failed; the whole extraction is aborted."""

    code = "quantization_error"


class ExtractionCancelled(ExtractionError):
    """The request was cancelled or superseded by a newer one."""

    code = "extraction_cancelled"
