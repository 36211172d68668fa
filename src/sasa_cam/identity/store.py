"""
Identity Store
==============

In-memory library of persona identities and their readiness state.

This store:
    - Assigns ids and schedules asynchronous refinement on add()
    - Moves identities to READY or ERROR when refinement completes
    - Keeps at most one active selection (select toggles)
    - Emits an IdentityLibrary snapshot to listeners on every mutation

Design Rules:
    - Identities are only mutated through store operations
    - Terminal transitions on a deleted id are no-ops (deletion may race
      with an in-flight refinement)
    - Refinement failure keeps the identity listed and selectable
    - The active id is never an id that has been removed
"""

import asyncio
import logging
import uuid
from typing import Callable, Dict, List, Optional, Set, Union

from sasa_cam.codec.image_codec import (
    EncodeError,
    bytes_to_transportable,
    resource_to_transportable,
    to_payload,
)
from sasa_cam.inference.client import InferenceClient, InferenceFailure
from sasa_cam.models.identity import EmbeddingStatus, Identity, IdentityLibrary


logger = logging.getLogger(__name__)


LibraryListener = Callable[[IdentityLibrary], None]


class IdentityStore:
    """
    Mapping of persona identities plus the active selection.

    Attributes:
        inference: Client used for refinement (None disables refinement)
        refine_instruction: Instruction text sent with each refinement

    Example:
        store = IdentityStore(inference=client)
        identity = store.add(jpeg_bytes, name="Me")
        store.select(identity.id)
        await store.wait_for_refinements()
    """

    def __init__(
        self,
        inference: Optional[InferenceClient] = None,
        refine_instruction: str = "Map facial features for real-time overlay.",
        resource_quality: float = 0.92,
    ) -> None:
        self.inference = inference
        self.refine_instruction = refine_instruction
        self.resource_quality = resource_quality

        # dict preserves insertion order, which is the display order
        self._identities: Dict[str, Identity] = {}
        self._active_id: Optional[str] = None
        self._listeners: List[LibraryListener] = []
        self._tasks: Set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    def list(self) -> List[Identity]:
        return list(self._identities.values())

    def get(self, identity_id: str) -> Optional[Identity]:
        return self._identities.get(identity_id)

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active(self) -> Optional[Identity]:
        if self._active_id is None:
            return None
        return self._identities.get(self._active_id)

    def snapshot(self) -> IdentityLibrary:
        return IdentityLibrary(identities=self.list(), active_id=self._active_id)

    def __len__(self) -> int:
        return len(self._identities)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, listener: LibraryListener) -> None:
        """Register a listener called with a snapshot after every mutation."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: LibraryListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self) -> None:
        library = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(library)
            except Exception as e:
                logger.error(f"Identity listener failed: {e}")

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add(self, raw_image: Union[bytes, str], name: Optional[str] = None) -> Identity:
        """
        Add a new identity and schedule its refinement.

        Returns immediately; refinement runs as a background task on the
        running event loop.

        Args:
            raw_image: Raw image bytes, data URL, http(s) URL or file path
            name: Display name (defaults to "Persona N")

        Returns:
            The new identity, in PROCESSING state
        """
        if isinstance(raw_image, (bytes, bytearray)):
            resource = bytes_to_transportable(bytes(raw_image))
        else:
            resource = raw_image

        identity = Identity(
            id=uuid.uuid4().hex,
            name=name or f"Persona {len(self._identities) + 1}",
            image_resource=resource,
            embedding_status=EmbeddingStatus.PROCESSING,
        )
        self._identities[identity.id] = identity
        logger.info(f"Identity added: {identity.id} ({identity.name})")
        self._emit()

        task = asyncio.get_running_loop().create_task(
            self._refine(identity),
            name=f"refine_{identity.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        return identity

    def preload(self, name: str, resource: str) -> Identity:
        """Add a preset identity that needs no refinement."""
        identity = Identity(
            id=uuid.uuid4().hex,
            name=name,
            image_resource=resource,
            embedding_status=EmbeddingStatus.READY,
        )
        self._identities[identity.id] = identity
        logger.info(f"Preset identity loaded: {identity.id} ({name})")
        self._emit()
        return identity

    def mark_ready(self, identity_id: str, description: Optional[str] = None) -> None:
        self._set_status(identity_id, EmbeddingStatus.READY, description)

    def mark_error(self, identity_id: str) -> None:
        self._set_status(identity_id, EmbeddingStatus.ERROR)

    def _set_status(
        self,
        identity_id: str,
        status: EmbeddingStatus,
        description: Optional[str] = None,
    ) -> None:
        current = self._identities.get(identity_id)
        if current is None:
            logger.debug(f"Ignoring {status.value} for removed identity {identity_id}")
            return

        update = {"embedding_status": status}
        if description is not None:
            update["description"] = description
        self._identities[identity_id] = current.model_copy(update=update)
        logger.info(f"Identity {identity_id} -> {status.value}")
        self._emit()

    def remove(self, identity_id: str) -> bool:
        """
        Delete an identity. Clears the selection if it was active.

        Returns:
            True if an identity was removed
        """
        if self._identities.pop(identity_id, None) is None:
            return False

        if self._active_id == identity_id:
            self._active_id = None
        logger.info(f"Identity removed: {identity_id}")
        self._emit()
        return True

    def select(self, identity_id: str) -> Optional[str]:
        """
        Toggle the active identity.

        Selecting the currently active id deselects it.

        Returns:
            The active id after the toggle

        Raises:
            KeyError: If the identity does not exist
        """
        if identity_id not in self._identities:
            raise KeyError(identity_id)

        self._active_id = None if self._active_id == identity_id else identity_id
        self._emit()
        return self._active_id

    def deselect(self) -> None:
        if self._active_id is None:
            return
        self._active_id = None
        self._emit()

    # -------------------------------------------------------------------------
    # Refinement
    # -------------------------------------------------------------------------

    async def _refine(self, identity: Identity) -> None:
        if self.inference is None:
            self.mark_ready(identity.id)
            return

        try:
            encoded = await resource_to_transportable(
                identity.image_resource, quality=self.resource_quality
            )
            description = await self.inference.refine(
                to_payload(encoded), self.refine_instruction
            )
        except (EncodeError, InferenceFailure) as e:
            logger.warning(f"Refinement failed for {identity.id}: {e}")
            self.mark_error(identity.id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Unexpected refinement error for {identity.id}: {e}")
            self.mark_error(identity.id)
        else:
            self.mark_ready(identity.id, description)

    @property
    def pending_refinements(self) -> int:
        return len(self._tasks)

    async def wait_for_refinements(self) -> None:
        """Wait until every scheduled refinement has finished."""
        while self._tasks:
            pending = list(self._tasks)
            await asyncio.gather(*pending, return_exceptions=True)
            self._tasks.difference_update(pending)

    async def close(self) -> None:
        """Cancel pending refinements."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()

    def get_metrics(self) -> dict:
        counts = {status.value: 0 for status in EmbeddingStatus}
        for identity in self._identities.values():
            counts[identity.embedding_status.value] += 1
        return {
            "identities": len(self._identities),
            "active_id": self._active_id,
            "pending_refinements": len(self._tasks),
            **{f"status_{key}": value for key, value in counts.items()},
        }
