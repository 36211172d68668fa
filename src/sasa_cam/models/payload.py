"""
Transport Payload
=================

The stripped form of an encoded image as sent to the inference service.

The codec produces enveloped data URLs ("data:image/jpeg;base64,...") for
local display. Requests carry only the base64 payload plus an explicit
media type, which is what ImagePayload holds.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ImagePayload:
    """
    Base64 image data without its envelope.

    Attributes:
        data: Base64-encoded image bytes (no "data:...;base64," prefix)
        mime_type: Explicit media type tag, e.g. "image/jpeg"
    """

    data: str
    mime_type: str = "image/jpeg"

    def __post_init__(self) -> None:
        """Validate invariants."""
        if not self.data:
            raise ValueError("payload data must be non-empty")
        if self.data.startswith("data:"):
            raise ValueError("payload data must not carry a data URL envelope")

    def __repr__(self) -> str:
        return f"ImagePayload(mime_type={self.mime_type!r}, size={len(self.data)})"
