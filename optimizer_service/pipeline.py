"""
High-level transcoding pipeline.

`transcode_image` is the entry point used by the batch orchestrator. It keeps
orchestration simple:
bytes in -> decode -> longest-edge resize -> encode -> bytes out.
Each stage runs off the event loop so many images can be in flight at once.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Optional, Tuple

from .config import EncodingPolicy
from .postprocessing import encode_image
from .preprocessing import ImageDecoder, PillowDecoder, decode_image_bytes, resize_to_long_edge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranscodeResult:
    data: bytes
    original_size: Tuple[int, int]
    output_size: Tuple[int, int]
    policy: EncodingPolicy


def transcode_image_bytes(image_bytes: bytes, policy: EncodingPolicy) -> TranscodeResult:
    """
    Full pipeline from raw bytes to encoded bytes, synchronously.

    Raises:
        TranscodeError: when any stage fails.
    """
    decoded = decode_image_bytes(image_bytes)
    resized = resize_to_long_edge(decoded, policy.max_dimension)
    data = encode_image(resized.image, policy)
    return TranscodeResult(
        data=data,
        original_size=resized.orig_size,
        output_size=resized.resized_size,
        policy=policy,
    )


async def transcode_image(
    image_bytes: bytes,
    policy: EncodingPolicy,
    decoder: Optional[ImageDecoder] = None,
) -> TranscodeResult:
    """Asynchronous variant; each stage is a suspension point."""
    decoder = decoder or PillowDecoder()
    decoded = await decoder.decode(image_bytes)
    resized = await asyncio.to_thread(resize_to_long_edge, decoded, policy.max_dimension)
    data = await asyncio.to_thread(encode_image, resized.image, policy)
    return TranscodeResult(
        data=data,
        original_size=resized.orig_size,
        output_size=resized.resized_size,
        policy=policy,
    )
