"""
Image decoding and longest-edge resizing.

Decoding turns raw bytes into a Pillow bitmap; resizing constrains the
longest edge while preserving aspect ratio and never upscales.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from io import BytesIO
import logging
import math
from typing import Optional, Protocol, Tuple

from PIL import Image, ImageOps

from .errors import DecodeError, InvalidDimensionsError

logger = logging.getLogger(__name__)


@dataclass
class DecodeResult:
    image: Image.Image
    source_format: Optional[str]
    size: Tuple[int, int]  # (width, height) after EXIF orientation


@dataclass
class ResizeResult:
    image: Image.Image
    orig_size: Tuple[int, int]
    resized_size: Tuple[int, int]


class ImageDecoder(Protocol):
    """Decodes raw bytes into a bitmap without blocking the event loop."""

    async def decode(self, image_bytes: bytes) -> DecodeResult: ...


def decode_image_bytes(image_bytes: bytes) -> DecodeResult:
    """
    Decode an encoded image into a fully loaded bitmap.

    `load()` is forced so truncated files fail here rather than later in the
    encoder. Animated inputs contribute their first frame only.

    Raises:
        DecodeError: when the bytes are not a readable image.
    """
    if not image_bytes:
        raise DecodeError("Empty image data")
    try:
        with Image.open(BytesIO(image_bytes)) as src:
            source_format = src.format
            src.seek(0)
            src.load()
            image = ImageOps.exif_transpose(src)
            if image is src:
                image = src.copy()
    except Exception as exc:  # noqa: BLE001
        raise DecodeError(f"Invalid image data: {exc}") from exc

    logger.debug("decoded %s image size=%dx%d mode=%s", source_format, image.width, image.height, image.mode)
    return DecodeResult(image=image, source_format=source_format, size=image.size)


class PillowDecoder:
    """Default decoder; runs Pillow in a worker thread."""

    async def decode(self, image_bytes: bytes) -> DecodeResult:
        return await asyncio.to_thread(decode_image_bytes, image_bytes)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_resize_dims(width: int, height: int, max_long_edge: int) -> Tuple[int, int]:
    """
    Preserve aspect ratio while constraining the longest edge.

    A square image takes the width branch. Images already within the limit
    keep their size.
    """
    if width <= 0 or height <= 0:
        raise InvalidDimensionsError(f"Invalid image dimensions {width}x{height}")
    if max_long_edge <= 0:
        raise ValueError("max_long_edge must be positive")

    if width >= height:
        if width > max_long_edge:
            new_h = max(1, _round_half_up(height * max_long_edge / width))
            return max_long_edge, new_h
    elif height > max_long_edge:
        new_w = max(1, _round_half_up(width * max_long_edge / height))
        return new_w, max_long_edge
    return width, height


def resize_to_long_edge(decoded: DecodeResult, max_long_edge: int) -> ResizeResult:
    orig_w, orig_h = decoded.image.size
    new_w, new_h = compute_resize_dims(orig_w, orig_h, max_long_edge)

    if (new_w, new_h) != (orig_w, orig_h):
        image_resized = decoded.image.resize((new_w, new_h), Image.Resampling.LANCZOS)
        logger.debug("resized %dx%d -> %dx%d", orig_w, orig_h, new_w, new_h)
    else:
        image_resized = decoded.image

    return ResizeResult(
        image=image_resized,
        orig_size=(orig_w, orig_h),
        resized_size=(new_w, new_h),
    )
