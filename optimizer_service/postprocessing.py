"""Encoding of resized bitmaps into the configured target format."""

from __future__ import annotations

from io import BytesIO
import logging

from PIL import Image, features

from .config import EncodingPolicy
from .errors import EncodeError

logger = logging.getLogger(__name__)

# Pillow feature names for codecs that are optional in a given build.
_CODEC_FEATURES = {
    "WEBP": "webp",
}


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA") or (image.mode == "P" and "transparency" in image.info)


def _normalize_mode(image: Image.Image, pil_format: str) -> Image.Image:
    """Convert to a pixel mode the target codec accepts."""
    if pil_format == "JPEG":
        if _has_alpha(image):
            rgba = image.convert("RGBA")
            flat = Image.new("RGB", rgba.size, (255, 255, 255))
            flat.paste(rgba, mask=rgba.getchannel("A"))
            return flat
        return image if image.mode in ("RGB", "L") else image.convert("RGB")

    if _has_alpha(image):
        return image if image.mode == "RGBA" else image.convert("RGBA")
    return image if image.mode == "RGB" else image.convert("RGB")


def codec_available(pil_format: str) -> bool:
    feature = _CODEC_FEATURES.get(pil_format)
    if feature is not None and not features.check(feature):
        return False
    Image.init()
    return pil_format in Image.SAVE


def encode_image(image: Image.Image, policy: EncodingPolicy) -> bytes:
    """
    Encode a bitmap in `policy.target_format` at `policy.quality`.

    Lossless targets ignore quality. The same bitmap and policy always give
    the same bytes.

    Raises:
        EncodeError: when the codec is missing or rejects the image.
    """
    spec = policy.format_spec
    if not codec_available(spec.pil_format):
        raise EncodeError(f"{spec.pil_format} encoding is not supported by this Pillow build")

    save_kwargs = {}
    if spec.pil_format in ("WEBP", "JPEG"):
        save_kwargs["quality"] = policy.codec_quality
    if spec.pil_format == "PNG":
        save_kwargs["optimize"] = True

    buf = BytesIO()
    try:
        _normalize_mode(image, spec.pil_format).save(buf, format=spec.pil_format, **save_kwargs)
    except Exception as exc:  # noqa: BLE001
        raise EncodeError(f"{spec.pil_format} encoder rejected image: {exc}") from exc

    data = buf.getvalue()
    logger.debug(
        "encoded %dx%d as %s quality=%d bytes=%d",
        image.width,
        image.height,
        spec.pil_format,
        policy.codec_quality,
        len(data),
    )
    return data
