"""
colorextract Fingerprinting Utilities
Content identity and cache key generation.
"""
import hashlib
from typing import Any, Dict

from colorextract.config import config
from colorextract.schemas import QuantizationOptions
from colorextract.services.imaging import ImageSource


def compute_sha256(data: bytes) -> str:
    """
    Compute SHA-256 hash of raw bytes.

    Args:
        data: Encoded image bytes or raw pixel bytes

    Returns:
        SHA-256 hash as hex string
    """
    return hashlib.sha256(data).hexdigest()


def content_identity(source: ImageSource) -> str:
    """
    Stable identity for an input.

    The caller-supplied identity wins; otherwise the content is hashed
    (encoded bytes, or the pixel buffer with its dimensions).
    """
    if source.identity:
        return source.identity
    if source.data is not None:
        return compute_sha256(source.data)
    buffer = source.buffer
    header = f"{buffer.width}x{buffer.height}:".encode()
    return compute_sha256(header + buffer.pixels.tobytes())


def generate_cache_key_digest(params: Dict[str, Any]) -> str:
    """
    Generate deterministic digest for parameter combinations.

    Args:
        params: Dictionary of parameters

    Returns:
        MD5 digest of sorted parameters
    """
    sorted_items = sorted(params.items())
    param_string = str(sorted_items)

    return hashlib.md5(param_string.encode()).hexdigest()


def generate_composite_cache_key(prefix: str, identity: str, size: int, last_modified: float,
                                 quality: str, max_colors: int, params_digest: str,
                                 policy_version: str = "1.0.0") -> str:
    """
    Generate the composite cache key for an extraction.

    Returns:
        "prefix:identity:size:mtime:quality:max_colors:digest:policy"
    """
    return (f"{prefix}:{identity}:{size}:{last_modified}:{quality}:{max_colors}:"
            f"{params_digest[:8]}:{policy_version}")


class FingerprintManager:
    """Builds cache keys for extraction requests."""

    def __init__(self, policy_version: str = None):
        self.policy_version = policy_version or config.POLICY_VERSION

    def get_extraction_key(self, source: ImageSource, options: QuantizationOptions) -> str:
        """Cache key covering the input identity and every option."""
        params = options.model_dump(mode="json")
        digest = generate_cache_key_digest(params)
        return generate_composite_cache_key(
            'pal',
            content_identity(source),
            source.file_size,
            source.last_modified,
            params['quality'],
            options.max_colors,
            digest,
            self.policy_version,
        )
