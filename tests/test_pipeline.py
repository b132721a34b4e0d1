"""Tests for the end-to-end single image pipeline."""

import pytest

from optimizer_service.config import EncodingPolicy
from optimizer_service.errors import DecodeError, TranscodeError
from optimizer_service.pipeline import transcode_image, transcode_image_bytes

from .conftest import CountingDecoder, make_image_bytes, open_bytes


def test_transcode_large_jpeg(landscape_jpeg, policy):
    result = transcode_image_bytes(landscape_jpeg, policy)

    assert result.original_size == (2000, 1000)
    assert result.output_size == (1200, 600)
    assert result.policy == policy
    out = open_bytes(result.data)
    assert out.format == "WEBP"
    assert out.size == (1200, 600)


def test_transcode_small_png_keeps_size(small_png, policy):
    result = transcode_image_bytes(small_png, policy)

    assert result.output_size == (800, 600)
    assert open_bytes(result.data).size == (800, 600)


def test_transcode_respects_policy_dimension():
    result = transcode_image_bytes(make_image_bytes((1000, 2000)), EncodingPolicy(max_dimension=500))

    assert result.output_size == (250, 500)


def test_transcode_corrupt_input(corrupt_blob, policy):
    with pytest.raises(DecodeError):
        transcode_image_bytes(corrupt_blob, policy)


@pytest.mark.asyncio
async def test_async_transcode_matches_sync(landscape_jpeg, policy):
    sync_result = transcode_image_bytes(landscape_jpeg, policy)

    async_result = await transcode_image(landscape_jpeg, policy)

    assert async_result.output_size == sync_result.output_size
    assert async_result.data == sync_result.data


@pytest.mark.asyncio
async def test_async_transcode_uses_injected_decoder(small_png, policy):
    decoder = CountingDecoder()

    await transcode_image(small_png, policy, decoder=decoder)

    assert decoder.calls == 1


@pytest.mark.asyncio
async def test_async_transcode_propagates_errors(corrupt_blob, policy):
    with pytest.raises(TranscodeError):
        await transcode_image(corrupt_blob, policy)
