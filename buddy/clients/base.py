"""
Interfaces for the identity provider and the keyed stores behind it.

Every store call carries the bearer token of the current session. Implementations
raise Unauthorized for a rejected credential and StoreError for anything else.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from buddy.models import AuthToken, Avatar, HealthReading, Profile


class IdentityProvider(ABC):

    @abstractmethod
    async def create_account(self, email: str, password: str, metadata: Dict[str, Any]) -> str:
        """
        Create an identity record and return its user id.

        Raises:
            ValidationError: The provider rejected the fields
            DuplicateAccount: The email is already registered
        """

    @abstractmethod
    async def authenticate(self, email: str, password: str) -> AuthToken:
        """
        Exchange credentials for a token.

        Raises:
            InvalidCredentials: With the provider's message
        """

    @abstractmethod
    async def get_current_session(self) -> Optional[AuthToken]:
        """Return the provider's live session, if one survives from earlier."""

    @abstractmethod
    async def sign_out(self) -> None:
        pass


class ProfileStore(ABC):

    @abstractmethod
    async def get(self, token: str, user_id: str) -> Optional[Profile]:
        pass

    @abstractmethod
    async def put(self, token: str, user_id: str, profile: Profile) -> None:
        pass

    @abstractmethod
    async def merge(self, token: str, user_id: str, fields: Dict[str, Any]) -> Profile:
        """
        Merge partial fields into the stored profile, last write wins per field.

        fields use the backend's wire names (ageGroup, parentEmail, language, habits).
        """


class AvatarStore(ABC):

    @abstractmethod
    async def get(self, token: str, user_id: str) -> Optional[Avatar]:
        pass

    @abstractmethod
    async def put(self, token: str, user_id: str, avatar: Avatar) -> None:
        pass


class DeviceLinkStore(ABC):

    @abstractmethod
    async def put(self, token: str, user_id: str, device_id: str, device_type: str) -> None:
        pass


class CareStore(ABC):
    """SOS alerts, wellness readings and guardian reports."""

    @abstractmethod
    async def raise_sos(self, token: str, user_id: str, message: str, location: Optional[str]) -> None:
        pass

    @abstractmethod
    async def record_health(self, token: str, user_id: str, reading: HealthReading) -> None:
        pass

    @abstractmethod
    async def health_history(self, token: str, user_id: str) -> List[HealthReading]:
        pass

    @abstractmethod
    async def send_parent_report(self, token: str, user_id: str, report: str) -> None:
        pass


class Backend:
    """The set of collaborators the session machine talks to."""

    def __init__(self,
                 identity: IdentityProvider,
                 profiles: ProfileStore,
                 avatars: AvatarStore,
                 devices: DeviceLinkStore,
                 care: CareStore):
        self.identity = identity
        self.profiles = profiles
        self.avatars = avatars
        self.devices = devices
        self.care = care

    async def aclose(self) -> None:
        """Release network resources held by any collaborator."""
        seen = set()
        for part in (self.identity, self.profiles, self.avatars, self.devices, self.care):
            close = getattr(part, "aclose", None)
            if close is not None and id(part) not in seen:
                seen.add(id(part))
                await close()
