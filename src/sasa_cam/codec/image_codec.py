"""
Image Codec
===========

Conversions between remote image resources, raw pixel frames and the
transportable encoding (base64 data URLs).

Envelope rules:
    - Encoding (frames, resources) produces an ENVELOPED data URL,
      "data:<media type>;base64,<payload>", ready for local display.
    - Requests to the inference service carry the STRIPPED payload plus
      an explicit media type (ImagePayload), never the envelope.
    - Responses are re-enveloped for display.

Mixing the two forms produces payloads the service rejects, so every
conversion between them goes through to_payload() / from_payload().

Quality:
    - Inline data URLs and raw bytes pass through losslessly.
    - Frame snapshots are JPEG-encoded at ~0.8 quality to bound payload size.
"""

import asyncio
import base64
import binascii
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import httpx
import numpy as np

from sasa_cam.models.payload import ImagePayload


logger = logging.getLogger(__name__)


DATA_URL_SCHEME = "data:"
DEFAULT_MEDIA_TYPE = "image/jpeg"
DEFAULT_FRAME_QUALITY = 0.8
DEFAULT_RESOURCE_QUALITY = 0.92


class EncodeError(Exception):
    """Raised when an image cannot be rendered into the transportable form."""
    pass


class ImageDecodeError(EncodeError):
    """Raised when a transportable image cannot be decoded to pixels."""
    pass


# =============================================================================
# Envelope Handling
# =============================================================================

def is_inline(resource: str) -> bool:
    """Whether the resource is already an inline data URL."""
    return resource.startswith(DATA_URL_SCHEME)


def split_envelope(encoded: str) -> Tuple[str, str]:
    """
    Split an encoded image into (media_type, payload).

    Strings without an envelope are treated as bare base64 payloads
    of the default media type.
    """
    if "," not in encoded:
        return DEFAULT_MEDIA_TYPE, encoded

    header, payload = encoded.split(",", 1)
    media_type = DEFAULT_MEDIA_TYPE
    if header.startswith(DATA_URL_SCHEME):
        declared = header[len(DATA_URL_SCHEME):].split(";", 1)[0].strip()
        if declared:
            media_type = declared
    return media_type, payload


def strip_envelope(encoded: str) -> str:
    """Return the raw base64 payload of an encoded image."""
    return split_envelope(encoded)[1]


def envelope(payload: str, media_type: str = DEFAULT_MEDIA_TYPE) -> str:
    """Wrap a base64 payload into a data URL."""
    return f"{DATA_URL_SCHEME}{media_type};base64,{payload}"


def to_payload(encoded: str) -> ImagePayload:
    """Convert an enveloped image into the stripped form used for requests."""
    media_type, payload = split_envelope(encoded)
    return ImagePayload(data=payload, mime_type=media_type)


def from_payload(payload: ImagePayload) -> str:
    """Re-envelope a response payload for display."""
    return envelope(payload.data, payload.mime_type)


def sniff_media_type(data: bytes) -> str:
    """Guess an image media type from its magic bytes."""
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return DEFAULT_MEDIA_TYPE


def bytes_to_transportable(data: bytes, media_type: Optional[str] = None) -> str:
    """
    Envelope raw image bytes without re-encoding them.

    Args:
        data: Raw image file bytes
        media_type: Explicit media type; sniffed from the bytes if None

    Returns:
        Data URL carrying the exact input bytes
    """
    if not data:
        raise EncodeError("Cannot encode empty image data")
    payload = base64.b64encode(data).decode("ascii")
    return envelope(payload, media_type or sniff_media_type(data))


def transportable_to_bytes(encoded: str) -> Tuple[str, bytes]:
    """
    Decode an encoded image into (media_type, raw bytes).

    Raises:
        ImageDecodeError: If the payload is not valid base64
    """
    media_type, payload = split_envelope(encoded)
    try:
        return media_type, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Base64 decode failed: {e}")


# =============================================================================
# Pixel Conversions
# =============================================================================

def frame_to_transportable(
    frame: np.ndarray,
    quality: float = DEFAULT_FRAME_QUALITY,
) -> str:
    """
    Encode a raw BGR frame as a JPEG data URL.

    The frame is encoded at whatever resolution it arrives in.

    Args:
        frame: BGR (H, W, 3) or grayscale (H, W) uint8 array
        quality: JPEG quality in (0, 1]

    Returns:
        "data:image/jpeg;base64,..." string

    Raises:
        EncodeError: If the frame is malformed or encoding fails
    """
    if frame is None or not isinstance(frame, np.ndarray):
        raise EncodeError(f"Expected numpy frame, got {type(frame).__name__}")
    if frame.ndim not in (2, 3) or frame.size == 0:
        raise EncodeError(f"Invalid frame shape: {frame.shape}")
    if frame.dtype != np.uint8:
        raise EncodeError(f"Invalid frame dtype: {frame.dtype}")

    jpeg_quality = max(1, min(100, int(round(quality * 100))))
    try:
        ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), jpeg_quality])
    except cv2.error as e:
        raise EncodeError(f"JPEG encode failed: {e}")

    if not ok:
        raise EncodeError("JPEG encode failed: cv2.imencode returned False")

    payload = base64.b64encode(buf.tobytes()).decode("ascii")
    return envelope(payload, "image/jpeg")


def decode_transportable(encoded: str) -> np.ndarray:
    """
    Decode an encoded image into a BGR numpy array.

    Returns:
        BGR image as np.ndarray (H, W, 3), dtype=uint8

    Raises:
        ImageDecodeError: If decoding fails or image is invalid
    """
    _, data = transportable_to_bytes(encoded)
    return _decode_bytes(data)


def _decode_bytes(data: bytes) -> np.ndarray:
    nparr = np.frombuffer(data, np.uint8)
    if nparr.size == 0:
        raise ImageDecodeError("Empty image data")

    bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if bgr is None:
        raise ImageDecodeError("Failed to decode image: cv2.imdecode returned None")

    if len(bgr.shape) != 3 or bgr.shape[2] != 3:
        raise ImageDecodeError(f"Invalid image shape: {bgr.shape}")

    return bgr


def _reencode(data: bytes, quality: float) -> str:
    return frame_to_transportable(_decode_bytes(data), quality)


# =============================================================================
# Resource Conversion
# =============================================================================

async def resource_to_transportable(
    resource: Union[str, bytes],
    http_client: Optional[httpx.AsyncClient] = None,
    quality: float = DEFAULT_RESOURCE_QUALITY,
    timeout: float = 15.0,
) -> str:
    """
    Convert an identity image resource into the transportable encoding.

    Inline data URLs are returned unchanged (no re-encode, no quality loss).
    Raw bytes are enveloped as-is. Remote URLs and file paths are loaded,
    decoded and re-encoded as JPEG, the same encoding used for frames.

    Args:
        resource: Data URL, http(s) URL, file path, or raw image bytes
        http_client: Client used for remote fetches (a temporary one if None)
        quality: JPEG quality for re-encoded resources
        timeout: Fetch timeout in seconds

    Returns:
        Enveloped data URL

    Raises:
        EncodeError: If the resource cannot be loaded or re-encoded
    """
    if isinstance(resource, (bytes, bytearray)):
        return bytes_to_transportable(bytes(resource))

    if is_inline(resource):
        return resource

    if resource.startswith(("http://", "https://")):
        data = await _fetch(resource, http_client, timeout)
    else:
        data = await _read_file(resource)

    return await asyncio.to_thread(_reencode, data, quality)


async def _fetch(
    url: str,
    http_client: Optional[httpx.AsyncClient],
    timeout: float,
) -> bytes:
    logger.debug(f"Fetching identity image: {url}")
    try:
        if http_client is None:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                response = await client.get(url)
        else:
            response = await http_client.get(url, timeout=timeout)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise EncodeError(f"Failed to fetch image {url}: {e}")

    if not response.content:
        raise EncodeError(f"Empty response fetching image {url}")
    return response.content


async def _read_file(path: str) -> bytes:
    try:
        return await asyncio.to_thread(Path(path).read_bytes)
    except OSError as e:
        raise EncodeError(f"Failed to read image {path}: {e}")
