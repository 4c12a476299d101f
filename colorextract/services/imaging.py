"""
colorextract Imaging Utilities
Pixel buffers, input validation, decoding and bounds-preserving downscale.
"""
import io
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np
from loguru import logger
from PIL import Image

from colorextract.config import config
from colorextract.errors import DecodeError, UnsupportedMediaError, ValidationError


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """
    Immutable RGBA pixel buffer.

    `pixels` is a read-only (height, width, 4) uint8 array in row-major order.
    """
    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self):
        pixels = np.asarray(self.pixels)
        if pixels.dtype != np.uint8 or pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"Expected (H, W, 4) uint8 RGBA array, got {pixels.dtype} {pixels.shape}")
        if pixels.shape[:2] != (self.height, self.width):
            raise ValueError(
                f"Buffer shape {pixels.shape[1]}×{pixels.shape[0]} does not match "
                f"declared size {self.width}×{self.height}"
            )
        view = pixels.view()
        view.flags.writeable = False
        object.__setattr__(self, "pixels", view)

    @classmethod
    def from_bytes(cls, width: int, height: int, data: bytes) -> "PixelBuffer":
        """Build a buffer from raw RGBA bytes."""
        expected = width * height * 4
        if width <= 0 or height <= 0 or len(data) != expected:
            raise ValueError(f"Expected {expected} bytes for {width}×{height} RGBA, got {len(data)}")
        pixels = np.frombuffer(data, dtype=np.uint8).reshape(height, width, 4)
        return cls(width=width, height=height, pixels=pixels)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelBuffer":
        """Build a buffer from an HxWx4 array, or HxWx3 with opaque alpha added."""
        array = np.asarray(array, dtype=np.uint8)
        if array.ndim == 3 and array.shape[2] == 3:
            alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
            array = np.concatenate([array, alpha], axis=2)
        if array.ndim != 3:
            raise ValueError(f"Expected an (H, W, C) array, got shape {array.shape}")
        height, width = array.shape[:2]
        return cls(width=width, height=height, pixels=array)

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def pixel_count(self) -> int:
        return self.width * self.height


@dataclass(frozen=True, eq=False)
class ImageSource:
    """
    Input handed to the orchestrator.

    Either `buffer` (already decoded) or `data` (encoded bytes) must be set.
    `identity`, `file_size` and `last_modified` feed the cache fingerprint.
    """
    mime_type: str
    file_size: int
    identity: Optional[str] = None
    last_modified: float = 0
    buffer: Optional[PixelBuffer] = None
    data: Optional[bytes] = None

    @classmethod
    def from_buffer(cls, buffer: PixelBuffer, identity: Optional[str] = None,
                    mime_type: str = "image/png", file_size: int = 0,
                    last_modified: float = 0) -> "ImageSource":
        """Wrap an already decoded buffer; file_size is the encoded size, if known."""
        return cls(
            mime_type=mime_type,
            file_size=file_size,
            identity=identity,
            last_modified=last_modified,
            buffer=buffer,
        )

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str, identity: Optional[str] = None,
                   last_modified: float = 0) -> "ImageSource":
        return cls(
            mime_type=mime_type,
            file_size=len(data),
            identity=identity,
            last_modified=last_modified,
            data=data,
        )


def detect_image_type(file_bytes: bytes) -> Optional[str]:
    """Return the MIME type implied by magic bytes, or None."""
    if file_bytes.startswith(b'\xff\xd8\xff'):
        return "image/jpeg"
    if file_bytes.startswith(b'\x89PNG\r\n\x1a\n'):
        return "image/png"
    if len(file_bytes) >= 12 and file_bytes[:4] == b'RIFF' and file_bytes[8:12] == b'WEBP':
        return "image/webp"
    return None


def validate_image_source(source: ImageSource) -> None:
    """
    Validate an extraction input before any work begins.

    Raises:
        UnsupportedMediaError: MIME type or magic bytes not a supported image
        ValidationError: Oversized input or missing pixel data
    """
    if not config.validate_mime_type(source.mime_type):
        raise UnsupportedMediaError(
            f"Unsupported media type {source.mime_type!r}. "
            f"Supported: {', '.join(config.SUPPORTED_MIME_TYPES)}"
        )

    max_bytes = config.max_file_bytes()
    size = len(source.data) if source.data is not None else source.file_size
    if source.file_size > max_bytes or size > max_bytes:
        raise ValidationError(f"File too large. Maximum size: {config.MAX_FILE_MB}MB")

    if source.buffer is None and source.data is None:
        raise ValidationError("Image source carries neither a pixel buffer nor encoded data")

    if source.buffer is None:
        if len(source.data) < 12:
            raise ValidationError("File too small or corrupt")
        if detect_image_type(source.data) is None:
            raise UnsupportedMediaError("Invalid image file. Magic bytes don't match supported formats.")


def decode_image(data: bytes) -> PixelBuffer:
    """
    Decode encoded image bytes to an RGBA PixelBuffer with Pillow.

    Raises:
        DecodeError: If Pillow cannot read the data
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            rgba = image.convert("RGBA")
            pixels = np.array(rgba, dtype=np.uint8)
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Failed to decode image: {e}") from e

    return PixelBuffer.from_array(pixels)


def scaled_dimensions(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """
    Dimensions after fitting the longer edge to max_dimension.

    The longer edge becomes exactly max_dimension; the shorter is floored and
    clamped to at least one pixel.
    """
    if width >= height:
        return max_dimension, max(1, height * max_dimension // width)
    return max(1, width * max_dimension // height), max_dimension


def downscale(buffer: PixelBuffer, max_dimension: int) -> PixelBuffer:
    """
    Downscale so neither edge exceeds max_dimension.

    Args:
        buffer: Input pixel buffer
        max_dimension: Maximum edge size

    Returns:
        The input buffer itself when it already fits, otherwise a new buffer
        resampled with area interpolation

    Raises:
        ValueError: If max_dimension is not positive
    """
    if max_dimension < 1:
        raise ValueError(f"max_dimension must be positive, got {max_dimension}")

    if buffer.width <= max_dimension and buffer.height <= max_dimension:
        return buffer

    new_width, new_height = scaled_dimensions(buffer.width, buffer.height, max_dimension)

    # INTER_AREA for downscaling (better quality); OpenCV needs a writeable source
    resized = cv2.resize(buffer.pixels.copy(), (new_width, new_height), interpolation=cv2.INTER_AREA)

    logger.debug(f"Downscaled {buffer.width}×{buffer.height} → {new_width}×{new_height}")
    return PixelBuffer(width=new_width, height=new_height, pixels=resized)
