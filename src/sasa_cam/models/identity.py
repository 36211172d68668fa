"""
Identity Models
===============

Persona identities and the library snapshot emitted by the identity store.

Lifecycle:
    PROCESSING -> READY   (refinement succeeded)
    PROCESSING -> ERROR   (refinement failed; identity stays selectable)

An identity's image_resource never changes after creation. Re-uploading the
same face creates a new identity with a new id.
"""

import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EmbeddingStatus(str, Enum):
    """Readiness of an identity's embedding."""

    READY = "ready"
    PROCESSING = "processing"
    ERROR = "error"


class Identity(BaseModel):
    """
    A stored reference face that can be applied to the live feed.

    Instances are immutable; the store replaces an entry when the
    embedding pipeline moves it to a terminal status.

    Attributes:
        id: Opaque unique identifier
        name: Display name
        image_resource: Data URL, http(s) URL or file path of the face image
        embedding_status: READY, PROCESSING or ERROR
        description: Text returned by the refinement call, if any
        created_at: UNIX timestamp of creation
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Opaque unique identifier")
    name: str = Field(..., description="Display name")
    image_resource: str = Field(
        ...,
        min_length=1,
        description="Data URL, http(s) URL or file path of the face image",
    )
    embedding_status: EmbeddingStatus = Field(
        default=EmbeddingStatus.PROCESSING,
        description="Readiness of the identity embedding",
    )
    description: Optional[str] = Field(
        default=None,
        description="Descriptive text produced by refinement",
    )
    created_at: float = Field(default_factory=time.time)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump inline image data."""
        return (
            f"Identity(id={self.id!r}, name={self.name!r}, "
            f"status={self.embedding_status.value})"
        )


class IdentityLibrary(BaseModel):
    """Snapshot of the identity store, emitted on every mutation."""

    identities: List[Identity] = Field(default_factory=list)
    active_id: Optional[str] = None

    @property
    def active(self) -> Optional[Identity]:
        for identity in self.identities:
            if identity.id == self.active_id:
                return identity
        return None
