"""In-memory collaborators for testing, development and the offline console."""

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from buddy.clients.base import (
    AvatarStore,
    Backend,
    CareStore,
    DeviceLinkStore,
    IdentityProvider,
    ProfileStore,
)
from buddy.core.errors import (
    DuplicateAccount,
    InvalidCredentials,
    StoreError,
    Unauthorized,
    ValidationError,
)
from buddy.models import AuthToken, Avatar, HealthReading, Profile


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryDirectory:
    """Accounts and issued tokens shared by the in-memory collaborators."""

    def __init__(self, token_ttl: float = 3600.0):
        self.token_ttl = token_ttl
        self.accounts: Dict[str, Dict[str, Any]] = {}  # email -> account
        self.tokens: Dict[str, AuthToken] = {}

    def issue(self, user_id: str) -> AuthToken:
        token = AuthToken(
            token=uuid.uuid4().hex,
            user_id=user_id,
            expires_at=time.time() + self.token_ttl,
        )
        self.tokens[token.token] = token
        return token

    def revoke(self, token: str) -> None:
        self.tokens.pop(token, None)

    def revoke_all(self) -> None:
        self.tokens.clear()

    def check(self, token: str, user_id: str) -> None:
        """Raise Unauthorized unless token is live and belongs to user_id."""
        issued = self.tokens.get(token)
        if issued is None or issued.is_expired() or issued.user_id != user_id:
            raise Unauthorized("Unauthorized")


class InMemoryIdentityProvider(IdentityProvider):

    def __init__(self, directory: InMemoryDirectory):
        self._directory = directory
        self._current: Optional[AuthToken] = None

    async def create_account(self, email: str, password: str, metadata: Dict[str, Any]) -> str:
        if not email or "@" not in email:
            raise ValidationError("Unable to validate email address: invalid format", field="email")
        if len(password) < 6:
            raise ValidationError("Password should be at least 6 characters.", field="password")
        if email.lower() in self._directory.accounts:
            raise DuplicateAccount("A user with this email address has already been registered")

        user_id = str(uuid.uuid4())
        self._directory.accounts[email.lower()] = {
            "id": user_id,
            "email": email,
            "password": password,
            "metadata": dict(metadata),
        }
        return user_id

    async def authenticate(self, email: str, password: str) -> AuthToken:
        account = self._directory.accounts.get((email or "").lower())
        if account is None or account["password"] != password:
            raise InvalidCredentials("Invalid login credentials")
        self._current = self._directory.issue(account["id"])
        return self._current

    async def get_current_session(self) -> Optional[AuthToken]:
        current = self._current
        if current is None or current.token not in self._directory.tokens or current.is_expired():
            return None
        return current

    async def sign_out(self) -> None:
        if self._current is not None:
            self._directory.revoke(self._current.token)
        self._current = None


class InMemoryProfileStore(ProfileStore):

    def __init__(self, directory: InMemoryDirectory):
        self._directory = directory
        self.records: Dict[str, Dict[str, Any]] = {}

    async def get(self, token: str, user_id: str) -> Optional[Profile]:
        self._directory.check(token, user_id)
        record = self.records.get(user_id)
        return Profile.model_validate(record) if record else None

    async def put(self, token: str, user_id: str, profile: Profile) -> None:
        self._directory.check(token, user_id)
        record = profile.to_wire()
        record.setdefault("createdAt", _now_iso())
        self.records[user_id] = record

    async def merge(self, token: str, user_id: str, fields: Dict[str, Any]) -> Profile:
        self._directory.check(token, user_id)
        existing = self.records.get(user_id)
        if existing is None:
            raise StoreError("Profile not found", status_code=404)
        updated = {**existing, **fields, "updatedAt": _now_iso()}
        profile = Profile.model_validate(updated)
        self.records[user_id] = updated
        return profile


class InMemoryAvatarStore(AvatarStore):

    def __init__(self, directory: InMemoryDirectory):
        self._directory = directory
        self.records: Dict[str, Dict[str, Any]] = {}

    async def get(self, token: str, user_id: str) -> Optional[Avatar]:
        self._directory.check(token, user_id)
        record = self.records.get(user_id)
        return Avatar.model_validate(record) if record else None

    async def put(self, token: str, user_id: str, avatar: Avatar) -> None:
        self._directory.check(token, user_id)
        self.records[user_id] = avatar.to_wire()


class InMemoryDeviceLinkStore(DeviceLinkStore):

    def __init__(self, directory: InMemoryDirectory):
        self._directory = directory
        self.links: Dict[str, Dict[str, str]] = {}

    async def put(self, token: str, user_id: str, device_id: str, device_type: str) -> None:
        self._directory.check(token, user_id)
        self.links[user_id] = {
            "deviceId": device_id,
            "deviceType": device_type,
            "connectedAt": _now_iso(),
        }


class InMemoryCareStore(CareStore):

    def __init__(self, directory: InMemoryDirectory):
        self._directory = directory
        self.alerts: List[Dict[str, Any]] = []
        self.readings: Dict[str, List[HealthReading]] = {}
        self.reports: List[Dict[str, Any]] = []

    async def raise_sos(self, token: str, user_id: str, message: str, location: Optional[str]) -> None:
        self._directory.check(token, user_id)
        self.alerts.append({
            "userId": user_id,
            "message": message,
            "location": location,
            "timestamp": _now_iso(),
            "status": "active",
        })

    async def record_health(self, token: str, user_id: str, reading: HealthReading) -> None:
        self._directory.check(token, user_id)
        stamped = reading.model_copy(update={"timestamp": reading.timestamp or _now_iso()})
        self.readings.setdefault(user_id, []).append(stamped)

    async def health_history(self, token: str, user_id: str) -> List[HealthReading]:
        self._directory.check(token, user_id)
        return list(self.readings.get(user_id, []))

    async def send_parent_report(self, token: str, user_id: str, report: str) -> None:
        self._directory.check(token, user_id)
        self.reports.append({"userId": user_id, "report": report, "timestamp": _now_iso()})


class InMemoryBackend(Backend):
    """All collaborators over one shared directory."""

    def __init__(self, token_ttl: float = 3600.0):
        self.directory = InMemoryDirectory(token_ttl=token_ttl)
        super().__init__(
            identity=InMemoryIdentityProvider(self.directory),
            profiles=InMemoryProfileStore(self.directory),
            avatars=InMemoryAvatarStore(self.directory),
            devices=InMemoryDeviceLinkStore(self.directory),
            care=InMemoryCareStore(self.directory),
        )
