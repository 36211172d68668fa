"""
Identity Module
===============

Persona identity library with asynchronous refinement.
"""

from sasa_cam.identity.store import IdentityStore, LibraryListener

__all__ = [
    "IdentityStore",
    "LibraryListener",
]
