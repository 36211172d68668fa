"""
Image Codec Tests
=================

Envelope handling, byte preservation and resource conversion.
"""

import asyncio
import base64

import httpx
import numpy as np
import pytest

from sasa_cam.codec import (
    EncodeError,
    ImageDecodeError,
    bytes_to_transportable,
    decode_transportable,
    frame_to_transportable,
    from_payload,
    resource_to_transportable,
    sniff_media_type,
    split_envelope,
    strip_envelope,
    to_payload,
    transportable_to_bytes,
)
from sasa_cam.models import ImagePayload


class TestEnvelope:
    """Tests for data URL envelope handling."""

    def test_strip_envelope(self):
        assert strip_envelope("data:image/png;base64,QUJD") == "QUJD"

    def test_strip_bare_payload_unchanged(self):
        assert strip_envelope("QUJD") == "QUJD"

    def test_split_reads_media_type(self):
        assert split_envelope("data:image/webp;base64,QUJD") == ("image/webp", "QUJD")

    def test_split_defaults_to_jpeg(self):
        assert split_envelope("QUJD") == ("image/jpeg", "QUJD")

    def test_payload_conversion_keeps_media_type(self):
        payload = to_payload("data:image/png;base64,QUJD")
        assert payload == ImagePayload(data="QUJD", mime_type="image/png")
        assert from_payload(payload) == "data:image/png;base64,QUJD"

    def test_payload_rejects_envelope(self):
        with pytest.raises(ValueError):
            ImagePayload(data="data:image/png;base64,QUJD")

    def test_payload_rejects_empty(self):
        with pytest.raises(ValueError):
            ImagePayload(data="")


class TestBytes:
    """Tests for raw byte conversions."""

    def test_bytes_are_preserved_exactly(self, png_bytes):
        encoded = bytes_to_transportable(png_bytes)
        media_type, data = transportable_to_bytes(encoded)
        assert data == png_bytes
        assert media_type == "image/png"

    def test_sniff_media_types(self, jpeg_bytes, png_bytes):
        assert sniff_media_type(jpeg_bytes) == "image/jpeg"
        assert sniff_media_type(png_bytes) == "image/png"
        assert sniff_media_type(b"GIF89a....") == "image/gif"
        assert sniff_media_type(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"

    def test_empty_bytes_fail(self):
        with pytest.raises(EncodeError):
            bytes_to_transportable(b"")

    def test_invalid_base64_fails(self):
        with pytest.raises(ImageDecodeError):
            transportable_to_bytes("data:image/png;base64,not base64!!")

    def test_decode_error_is_encode_error(self):
        with pytest.raises(EncodeError):
            decode_transportable("data:image/png;base64," + base64.b64encode(b"junk").decode())


class TestFrames:
    """Tests for frame encoding."""

    def test_frame_roundtrip_keeps_resolution(self):
        frame = np.full((40, 70, 3), 120, dtype=np.uint8)
        encoded = frame_to_transportable(frame, quality=0.8)
        assert encoded.startswith("data:image/jpeg;base64,")
        assert decode_transportable(encoded).shape == (40, 70, 3)

    def test_grayscale_frame(self):
        frame = np.zeros((20, 20), dtype=np.uint8)
        assert frame_to_transportable(frame).startswith("data:image/jpeg;base64,")

    def test_rejects_wrong_dtype(self):
        with pytest.raises(EncodeError):
            frame_to_transportable(np.zeros((10, 10, 3), dtype=np.float32))

    def test_rejects_empty_frame(self):
        with pytest.raises(EncodeError):
            frame_to_transportable(np.zeros((0, 10, 3), dtype=np.uint8))

    def test_rejects_non_array(self):
        with pytest.raises(EncodeError):
            frame_to_transportable(None)


class TestResources:
    """Tests for resource_to_transportable."""

    def test_inline_resource_is_byte_identical(self, jpeg_data_url):
        result = asyncio.run(resource_to_transportable(jpeg_data_url))
        assert result == jpeg_data_url

    def test_raw_bytes_are_enveloped_unchanged(self, png_bytes):
        result = asyncio.run(resource_to_transportable(png_bytes))
        assert transportable_to_bytes(result) == ("image/png", png_bytes)

    def test_remote_resource_is_reencoded(self, png_bytes):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.host == "images.example.com"
            return httpx.Response(200, content=png_bytes)

        async def run():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                return await resource_to_transportable(
                    "https://images.example.com/face.png",
                    http_client=client,
                )

        result = asyncio.run(run())
        assert result.startswith("data:image/jpeg;base64,")
        assert decode_transportable(result).shape == (48, 48, 3)

    def test_remote_failure_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        async def run():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                await resource_to_transportable("https://images.example.com/x.png", http_client=client)

        with pytest.raises(EncodeError):
            asyncio.run(run())

    def test_file_resource(self, tmp_path, png_bytes):
        path = tmp_path / "face.png"
        path.write_bytes(png_bytes)
        result = asyncio.run(resource_to_transportable(str(path)))
        assert result.startswith("data:image/jpeg;base64,")

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(EncodeError):
            asyncio.run(resource_to_transportable(str(tmp_path / "missing.png")))

    def test_undecodable_file_raises(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_bytes(b"not an image")
        with pytest.raises(EncodeError):
            asyncio.run(resource_to_transportable(str(path)))
