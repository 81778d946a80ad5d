"""
External collaborators: the identity provider and the profile, avatar,
device-link and care stores, with in-memory and HTTP implementations.
"""

from .base import (
    AvatarStore,
    Backend,
    CareStore,
    DeviceLinkStore,
    IdentityProvider,
    ProfileStore,
)
from .inmemory import InMemoryBackend

__all__ = [
    "AvatarStore",
    "Backend",
    "CareStore",
    "DeviceLinkStore",
    "IdentityProvider",
    "InMemoryBackend",
    "ProfileStore",
]
