"""Shared fixtures and image factories for optimizer tests."""

import asyncio
from io import BytesIO
from typing import Optional

import pytest
from PIL import Image

from optimizer_service import config
from optimizer_service.config import EncodingPolicy, Settings
from optimizer_service.preprocessing import DecodeResult, PillowDecoder

SLOW_MARKER = b"SLOW"


def make_image(size, mode="RGB", color=(200, 40, 40), noise=False) -> Image.Image:
    if noise:
        img = Image.effect_noise(size, 64).convert(mode)
    else:
        img = Image.new(mode, size, color if mode != "RGBA" else color + (128,))
    return img


def make_image_bytes(
    size,
    fmt: str = "JPEG",
    mode: str = "RGB",
    color=(200, 40, 40),
    noise: bool = False,
    exif_orientation: Optional[int] = None,
) -> bytes:
    img = make_image(size, mode=mode, color=color, noise=noise)
    buf = BytesIO()
    save_kwargs = {}
    if exif_orientation is not None:
        exif = Image.Exif()
        exif[0x0112] = exif_orientation
        save_kwargs["exif"] = exif
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


def open_bytes(data: bytes) -> Image.Image:
    img = Image.open(BytesIO(data))
    img.load()
    return img


class SlowDecoder:
    """Sleeps before decoding inputs that start with SLOW_MARKER."""

    def __init__(self, delay: float = 10.0):
        self.delay = delay
        self._inner = PillowDecoder()

    async def decode(self, image_bytes: bytes) -> DecodeResult:
        if image_bytes.startswith(SLOW_MARKER):
            await asyncio.sleep(self.delay)
        return await self._inner.decode(image_bytes)


class CountingDecoder:
    """Counts decode calls and tracks peak concurrency."""

    def __init__(self, hold: float = 0.0):
        self.calls = 0
        self.active = 0
        self.peak = 0
        self.hold = hold
        self._inner = PillowDecoder()

    async def decode(self, image_bytes: bytes) -> DecodeResult:
        self.calls += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.hold:
                await asyncio.sleep(self.hold)
            return await self._inner.decode(image_bytes)
        finally:
            self.active -= 1


async def wait_for_status(item, status, timeout: float = 10.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while item.status is not status:
        if loop.time() > deadline:
            raise AssertionError(f"item {item.original_name} never reached {status}")
        await asyncio.sleep(0.01)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    config.get_settings.cache_clear()
    yield
    config.get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def policy() -> EncodingPolicy:
    return EncodingPolicy()


@pytest.fixture
def landscape_jpeg() -> bytes:
    return make_image_bytes((2000, 1000), fmt="JPEG")


@pytest.fixture
def small_png() -> bytes:
    return make_image_bytes((800, 600), fmt="PNG")


@pytest.fixture
def corrupt_blob() -> bytes:
    return b"\x00\x01definitely not an image\xff\xd8"
