"""
Codec Module
============

Image conversions between resources, raw frames and the transportable
data URL encoding, plus envelope stripping for inference requests.
"""

from sasa_cam.codec.image_codec import (
    EncodeError,
    ImageDecodeError,
    bytes_to_transportable,
    decode_transportable,
    envelope,
    frame_to_transportable,
    from_payload,
    is_inline,
    resource_to_transportable,
    sniff_media_type,
    split_envelope,
    strip_envelope,
    to_payload,
    transportable_to_bytes,
)

__all__ = [
    "EncodeError",
    "ImageDecodeError",
    "bytes_to_transportable",
    "decode_transportable",
    "envelope",
    "frame_to_transportable",
    "from_payload",
    "is_inline",
    "resource_to_transportable",
    "sniff_media_type",
    "split_envelope",
    "strip_envelope",
    "to_payload",
    "transportable_to_bytes",
]
