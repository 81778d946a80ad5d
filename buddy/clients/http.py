"""HTTP collaborators for the hosted Buddy backend.

Identity goes through the GoTrue auth REST API; profiles, avatars, device links
and care records go through the backend's edge function. Both share one
httpx.AsyncClient.

Usage:
    backend = HttpBackend(config.api)
    token = await backend.identity.authenticate("kid@example.com", "secret")
    profile = await backend.profiles.get(token.token, token.user_id)
    await backend.aclose()
"""

import logging
import time
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
import pydantic

from buddy.clients.base import (
    AvatarStore,
    Backend,
    CareStore,
    DeviceLinkStore,
    IdentityProvider,
    ProfileStore,
)
from buddy.core.config import ApiConfig
from buddy.core.errors import (
    DuplicateAccount,
    InvalidCredentials,
    StoreError,
    Unauthorized,
    ValidationError,
)
from buddy.models import AuthToken, Avatar, HealthReading, Profile

M = TypeVar("M", bound=pydantic.BaseModel)

logger = logging.getLogger(__name__)

_DUPLICATE_MARKERS = ("already been registered", "already registered", "already exists")


def _error_message(response: httpx.Response, fallback: str) -> str:
    """Pull a human-readable message out of an error body."""
    try:
        data = response.json()
    except ValueError:
        return response.text or fallback
    if not isinstance(data, dict):
        return fallback
    for key in ("error_description", "msg", "message", "error"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return fallback


def _json_body(response: httpx.Response, what: str) -> dict:
    """Decode a success body; anything but a JSON object is a store failure."""
    try:
        data = response.json()
    except ValueError as e:
        raise StoreError(f"{what} returned a malformed body", status_code=response.status_code) from e
    if not isinstance(data, dict):
        raise StoreError(f"{what} returned a malformed body", status_code=response.status_code)
    return data


def _parse(model: Type[M], record: Any) -> M:
    """Validate a stored record; a record that does not fit the model is a store failure."""
    try:
        return model.model_validate(record)
    except pydantic.ValidationError as e:
        raise StoreError(f"Malformed {model.__name__.lower()} record: {e.error_count()} invalid field(s)") from e


class ApiTransport:
    """Thin wrapper over httpx.AsyncClient shared by all HTTP collaborators."""

    def __init__(self, config: ApiConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self, token: Optional[str]) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.anon_key:
            headers["apikey"] = self.config.anon_key
        bearer = token or self.config.anon_key
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    async def request(self,
                      method: str,
                      path: str,
                      *,
                      token: Optional[str] = None,
                      json: Optional[dict] = None,
                      params: Optional[dict] = None) -> httpx.Response:
        try:
            return await self._client.request(
                method=method,
                url=path,
                headers=self._headers(token),
                json=json,
                params=params,
            )
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {e}") from e

    async def function(self, method: str, route: str, token: str, json: Optional[dict] = None) -> dict:
        """
        Call an edge-function route with the session's bearer token.

        Raises:
            Unauthorized: On 401
            StoreError: On any other failure
        """
        path = f"{self.config.functions_path}{route}"
        response = await self.request(method, path, token=token, json=json)
        if response.status_code == 401:
            raise Unauthorized(_error_message(response, "Unauthorized"))
        if response.status_code >= 400:
            raise StoreError(_error_message(response, f"{method} {route} failed"),
                             status_code=response.status_code)
        if not response.content:
            return {}
        return _json_body(response, f"{method} {route}")


class GoTrueIdentityProvider(IdentityProvider):
    """Password login against the GoTrue REST API; sign-up via the backend."""

    def __init__(self, transport: ApiTransport):
        self._transport = transport
        self._current: Optional[AuthToken] = None

    async def create_account(self, email: str, password: str, metadata: Dict[str, Any]) -> str:
        path = f"{self._transport.config.functions_path}/register"
        response = await self._transport.request(
            "POST", path, json={"email": email, "password": password, **metadata}
        )
        if response.status_code >= 400:
            message = _error_message(response, "Registration failed")
            if response.status_code == 400:
                if any(marker in message.lower() for marker in _DUPLICATE_MARKERS):
                    raise DuplicateAccount(message)
                raise ValidationError(message)
            raise StoreError(message, status_code=response.status_code)
        user = _json_body(response, "Registration").get("user") or {}
        if not isinstance(user, dict) or not user.get("id"):
            raise StoreError("Registration response did not include a user id")
        return user["id"]

    async def authenticate(self, email: str, password: str) -> AuthToken:
        response = await self._transport.request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if response.status_code in (400, 401, 422):
            raise InvalidCredentials(_error_message(response, "Login failed"))
        if response.status_code >= 400:
            raise StoreError(_error_message(response, "Login failed"), status_code=response.status_code)

        data = _json_body(response, "Login")
        try:
            expires_at = data.get("expires_at") or time.time() + float(data.get("expires_in", 3600))
            token = AuthToken(
                token=data["access_token"],
                user_id=data["user"]["id"],
                expires_at=float(expires_at),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise StoreError("Login response did not include a session") from e
        self._current = token
        return self._current

    async def get_current_session(self) -> Optional[AuthToken]:
        if self._current is not None and self._current.is_expired():
            self._current = None
        return self._current

    async def sign_out(self) -> None:
        current, self._current = self._current, None
        if current is None:
            return
        response = await self._transport.request("POST", "/auth/v1/logout", token=current.token)
        if response.status_code >= 400 and response.status_code != 401:
            logger.warning(f"Sign out returned {response.status_code}")


class HttpProfileStore(ProfileStore):
    """The backend resolves the user from the token; user_id is not sent."""

    def __init__(self, transport: ApiTransport):
        self._transport = transport

    async def get(self, token: str, user_id: str) -> Optional[Profile]:
        data = await self._transport.function("GET", "/profile", token)
        record = data.get("profile")
        return _parse(Profile, record) if record else None

    async def put(self, token: str, user_id: str, profile: Profile) -> None:
        await self._transport.function("POST", "/profile", token, json=profile.to_wire())

    async def merge(self, token: str, user_id: str, fields: Dict[str, Any]) -> Profile:
        data = await self._transport.function("POST", "/profile", token, json=fields)
        record = data.get("profile")
        if not record:
            raise StoreError("Profile update response did not include the profile")
        return _parse(Profile, record)


class HttpAvatarStore(AvatarStore):

    def __init__(self, transport: ApiTransport):
        self._transport = transport

    async def get(self, token: str, user_id: str) -> Optional[Avatar]:
        data = await self._transport.function("GET", "/avatar", token)
        record = data.get("avatar")
        if not record:
            return None
        if isinstance(record, dict) and record.get("avatarData"):
            record = record["avatarData"]
        return _parse(Avatar, record)

    async def put(self, token: str, user_id: str, avatar: Avatar) -> None:
        await self._transport.function(
            "POST", "/avatar", token,
            json={"avatarData": avatar.to_wire(), "avatarName": avatar.name},
        )


class HttpDeviceLinkStore(DeviceLinkStore):

    def __init__(self, transport: ApiTransport):
        self._transport = transport

    async def put(self, token: str, user_id: str, device_id: str, device_type: str) -> None:
        await self._transport.function(
            "POST", "/iot-connect", token,
            json={"deviceId": device_id, "deviceType": device_type},
        )


class HttpCareStore(CareStore):

    def __init__(self, transport: ApiTransport):
        self._transport = transport

    async def raise_sos(self, token: str, user_id: str, message: str, location: Optional[str]) -> None:
        await self._transport.function("POST", "/sos", token, json={"message": message, "location": location})

    async def record_health(self, token: str, user_id: str, reading: HealthReading) -> None:
        await self._transport.function(
            "POST", "/health-data", token,
            json=reading.model_dump(by_alias=True, exclude_none=True),
        )

    async def health_history(self, token: str, user_id: str) -> List[HealthReading]:
        data = await self._transport.function("GET", "/health-data", token)
        return [_parse(HealthReading, item) for item in data.get("healthData") or []]

    async def send_parent_report(self, token: str, user_id: str, report: str) -> None:
        await self._transport.function("POST", "/parent-report", token, json={"report": report})


class HttpBackend(Backend):
    """All HTTP collaborators over one transport."""

    def __init__(self, config: ApiConfig, client: Optional[httpx.AsyncClient] = None):
        self.transport = ApiTransport(config, client)
        super().__init__(
            identity=GoTrueIdentityProvider(self.transport),
            profiles=HttpProfileStore(self.transport),
            avatars=HttpAvatarStore(self.transport),
            devices=HttpDeviceLinkStore(self.transport),
            care=HttpCareStore(self.transport),
        )

    async def aclose(self) -> None:
        await self.transport.aclose()
