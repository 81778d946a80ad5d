"""
Onboarding session state machine.

The machine owns the Session and moves it through
landing -> login -> authenticating -> dashboard for returning users, and
landing -> login -> ageSelect -> registering -> creatingAvatar -> dashboard
for new ones. Stage changes go through the pure transition table below, so the
navigation rules can be tested without any collaborators.

Any authenticated call rejected with Unauthorized (or made with an expired
token) clears the session and forces the login stage from wherever it was.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple, TypeVar

from buddy.clients.base import Backend
from buddy.core.bus import EventBus
from buddy.core.errors import (
    BuddyError,
    InvalidCredentials,
    InvalidTransition,
    SessionExpired,
    StoreError,
    Unauthorized,
    ValidationError,
)
from buddy.core.events import EventType
from buddy.core.registry import ServiceRegistry
from buddy.core.service import BaseService
from buddy.events.session import (
    AvatarCreatedEvent,
    LoginFailedEvent,
    ProfileUpdatedEvent,
    SessionExpiredEvent,
    StageChangedEvent,
)
from buddy.events.system import ServiceErrorEvent
from buddy.models import (
    PROFILE_WIRE_FIELDS,
    Avatar,
    AvatarDraft,
    Cohort,
    Profile,
    ProfileDraft,
    Session,
    Stage,
)
from buddy.onboarding.avatar import build_avatar

T = TypeVar("T")

DEVICE_TYPE = "smartwatch"


class Trigger(str, Enum):
    """Inputs that move the onboarding session between stages."""
    LOGO_ACTIVATED = "logo_activated"
    CHOOSE_LOGIN = "choose_login"
    CHOOSE_REGISTER = "choose_register"
    BACK = "back"
    COHORT_CHOSEN = "cohort_chosen"
    CREDENTIALS_SUBMITTED = "credentials_submitted"
    SESSION_RESTORED = "session_restored"
    PROFILE_LOADED = "profile_loaded"
    AVATAR_MISSING = "avatar_missing"
    LOAD_FAILED = "load_failed"
    REGISTERED = "registered"
    AVATAR_COMPLETED = "avatar_completed"
    LOGOUT = "logout"
    SESSION_EXPIRED = "session_expired"


TRANSITIONS: Dict[Tuple[Stage, Trigger], Stage] = {
    (Stage.LANDING, Trigger.LOGO_ACTIVATED): Stage.LOGIN,
    (Stage.LANDING, Trigger.SESSION_RESTORED): Stage.AUTHENTICATING,
    (Stage.LOGIN, Trigger.CHOOSE_REGISTER): Stage.AGE_SELECT,
    (Stage.LOGIN, Trigger.CREDENTIALS_SUBMITTED): Stage.AUTHENTICATING,
    (Stage.LOGIN, Trigger.BACK): Stage.LANDING,
    (Stage.AGE_SELECT, Trigger.CHOOSE_LOGIN): Stage.LOGIN,
    (Stage.AGE_SELECT, Trigger.COHORT_CHOSEN): Stage.REGISTERING,
    (Stage.AGE_SELECT, Trigger.BACK): Stage.LOGIN,
    (Stage.REGISTERING, Trigger.CHOOSE_LOGIN): Stage.LOGIN,
    (Stage.REGISTERING, Trigger.BACK): Stage.AGE_SELECT,
    (Stage.REGISTERING, Trigger.REGISTERED): Stage.CREATING_AVATAR,
    (Stage.AUTHENTICATING, Trigger.PROFILE_LOADED): Stage.DASHBOARD,
    (Stage.AUTHENTICATING, Trigger.AVATAR_MISSING): Stage.CREATING_AVATAR,
    (Stage.AUTHENTICATING, Trigger.LOAD_FAILED): Stage.ERROR,
    (Stage.ERROR, Trigger.PROFILE_LOADED): Stage.DASHBOARD,
    (Stage.ERROR, Trigger.AVATAR_MISSING): Stage.CREATING_AVATAR,
    (Stage.ERROR, Trigger.LOAD_FAILED): Stage.ERROR,
    (Stage.ERROR, Trigger.LOGOUT): Stage.LANDING,
    (Stage.CREATING_AVATAR, Trigger.AVATAR_COMPLETED): Stage.DASHBOARD,
    (Stage.CREATING_AVATAR, Trigger.LOGOUT): Stage.LANDING,
    (Stage.DASHBOARD, Trigger.LOGOUT): Stage.LANDING,
}


def next_stage(stage: Stage, trigger: Trigger) -> Stage:
    """
    Resolve the stage a trigger leads to.

    SESSION_EXPIRED leads to LOGIN from every stage.

    Raises:
        InvalidTransition: If the stage does not accept the trigger
    """
    if trigger is Trigger.SESSION_EXPIRED:
        return Stage.LOGIN
    try:
        return TRANSITIONS[(stage, trigger)]
    except KeyError:
        raise InvalidTransition(stage, trigger) from None


class OnboardingSessionMachine(BaseService):
    """
    Owns the Session and every call that touches the identity provider or the
    profile, avatar and device-link stores.
    """

    PRODUCES_EVENTS = {
        EventType.STAGE_CHANGED: {
            'schema': StageChangedEvent,
            'description': "The onboarding session moved to a new stage"
        },
        EventType.SESSION_EXPIRED: {
            'schema': SessionExpiredEvent,
            'description': "An authenticated call was rejected and the session was cleared"
        },
        EventType.LOGIN_FAILED: {
            'schema': LoginFailedEvent,
            'description': "The identity provider rejected the credentials"
        },
        EventType.PROFILE_UPDATED: {
            'schema': ProfileUpdatedEvent,
            'description': "Profile fields were merged into the stored profile"
        },
        EventType.AVATAR_CREATED: {
            'schema': AvatarCreatedEvent,
            'description': "The avatar wizard completed and the avatar was stored"
        },
        EventType.SERVICE_ERROR: {
            'schema': ServiceErrorEvent,
            'description': "Profile or avatar loading failed after authentication"
        },
    }

    def __init__(self,
                 event_bus: EventBus,
                 service_registry: ServiceRegistry,
                 backend: Backend,
                 name: Optional[str] = None,
                 config: Optional[Any] = None):
        super().__init__(event_bus, service_registry, name=name, config=config)
        self.backend = backend
        self._session = Session()
        self._background: Set[asyncio.Task] = set()

    @property
    def session(self) -> Session:
        """A copy of the current session."""
        return self._session.model_copy(deep=True)

    @property
    def stage(self) -> Stage:
        return self._session.stage

    async def _on_stop(self) -> None:
        await self.wait_background()

    # Navigation

    async def activate_logo(self) -> Stage:
        return await self._transition(Trigger.LOGO_ACTIVATED)

    async def choose_login(self) -> Stage:
        return await self._transition(Trigger.CHOOSE_LOGIN)

    async def choose_register(self) -> Stage:
        return await self._transition(Trigger.CHOOSE_REGISTER)

    async def choose_cohort(self, cohort) -> Stage:
        """Select the age group for registration; accepts a Cohort, a name or an age-group id."""
        try:
            cohort = Cohort.parse(cohort)
        except ValueError:
            raise ValidationError(f"Unknown age group: {cohort}", field="age_cohort") from None
        next_stage(self._session.stage, Trigger.COHORT_CHOSEN)
        self._session.selected_cohort = cohort
        return await self._transition(Trigger.COHORT_CHOSEN)

    async def back(self) -> Stage:
        return await self._transition(Trigger.BACK)

    # Authentication

    async def login(self, email: str, password: str) -> Stage:
        """
        Authenticate and load the user's profile and avatar.

        Returns:
            The stage the session ended in: dashboard, creatingAvatar, or error
            when the profile could not be loaded

        Raises:
            InvalidCredentials: With the provider's message; the session stays at login
            StoreError: The provider could not be reached; the session stays at login
        """
        next_stage(self._session.stage, Trigger.CREDENTIALS_SUBMITTED)
        self._session.last_error = None

        try:
            token = await self.backend.identity.authenticate(email, password)
        except InvalidCredentials as e:
            self._session.last_error = e.message
            await self.publish(LoginFailedEvent(message=e.message))
            raise
        except StoreError as e:
            self._session.last_error = e.message
            raise

        self._session.identity = token
        await self._transition(Trigger.CREDENTIALS_SUBMITTED)
        self.logger.info("Authenticated", user_id=token.user_id)
        return await self._load_user_data()

    async def resume(self) -> Stage:
        """
        Restore a session the identity provider still holds, if any.

        Only acts from the landing stage; otherwise returns the current stage.
        """
        if self._session.stage is not Stage.LANDING:
            return self._session.stage

        token = await self.backend.identity.get_current_session()
        if token is None or token.is_expired():
            return self._session.stage

        self._session.identity = token
        await self._transition(Trigger.SESSION_RESTORED)
        return await self._load_user_data()

    async def retry_load(self) -> Stage:
        """Reload profile and avatar after a failed load."""
        if self._session.stage is not Stage.ERROR:
            raise InvalidTransition(self._session.stage, Trigger.PROFILE_LOADED)
        return await self._load_user_data()

    async def _load_user_data(self) -> Stage:
        try:
            profile, avatar = await self.authorized(self._fetch_user_records)
        except SessionExpired:
            return self._session.stage
        except StoreError as e:
            return await self._load_failed(e.message)

        if profile is None:
            return await self._load_failed("No profile found for this account")

        self._session.profile = profile
        self._session.avatar = avatar
        if avatar is None:
            return await self._transition(Trigger.AVATAR_MISSING)
        return await self._transition(Trigger.PROFILE_LOADED)

    async def _fetch_user_records(self, token: str, user_id: str) -> Tuple[Optional[Profile], Optional[Avatar]]:
        profile, avatar = await asyncio.gather(
            self.backend.profiles.get(token, user_id),
            self.backend.avatars.get(token, user_id),
        )
        return profile, avatar

    async def _load_failed(self, message: str) -> Stage:
        self.logger.error("Failed to load user data", error=message)
        self._session.last_error = message
        await self.publish(ServiceErrorEvent(
            service_name=self.name,
            error_type="load_failed",
            error_message=message,
        ))
        return await self._transition(Trigger.LOAD_FAILED)

    # Registration

    async def register(self, draft: ProfileDraft) -> Stage:
        """
        Create the account and profile for the selected cohort, sign in, and
        move on to avatar creation.

        Nothing is created when validation fails.

        Raises:
            ValidationError: A required field is missing
            DuplicateAccount: The email is already registered
        """
        stage = self._session.stage
        next_stage(stage, Trigger.REGISTERED)
        cohort = self._session.selected_cohort
        if cohort is None:
            raise ValidationError("Choose an age group first", field="age_cohort")
        self._validate_draft(draft, cohort)

        name = draft.name.strip()
        email = draft.email.strip()
        guardian = (draft.parent_or_family_email or "").strip() or None
        language = draft.preferred_language or "English"

        user_id = await self.backend.identity.create_account(email, draft.password, {
            "name": name,
            "ageGroup": cohort.age_group,
            "parentEmail": guardian,
            "language": language,
        })
        self.logger.info("Account created", user_id=user_id, cohort=cohort.value)

        token = await self.backend.identity.authenticate(email, draft.password)
        self._session.identity = token

        profile = Profile(
            id=user_id,
            name=name,
            email=email,
            age_cohort=cohort,
            parent_or_family_email=guardian,
            preferred_language=language,
        )
        await self.authorized(lambda t, uid: self.backend.profiles.put(t, uid, profile))
        self._session.profile = profile
        self._session.avatar = None

        if draft.link_device:
            self._link_device(token.token, token.user_id)

        return await self._transition(Trigger.REGISTERED)

    @staticmethod
    def _validate_draft(draft: ProfileDraft, cohort: Cohort) -> None:
        if not draft.name.strip():
            raise ValidationError("Name is required", field="name")
        if not draft.email.strip():
            raise ValidationError("Email is required", field="email")
        if not draft.password:
            raise ValidationError("Password is required", field="password")
        if cohort.requires_guardian and not (draft.parent_or_family_email or "").strip():
            if cohort is Cohort.SENIOR:
                raise ValidationError("Family member email is required", field="parent_or_family_email")
            raise ValidationError("Parent account email is required", field="parent_or_family_email")

    def _link_device(self, token: str, user_id: str) -> None:
        device_id = f"{DEVICE_TYPE}_{int(time.time() * 1000)}"
        task = asyncio.create_task(self.backend.devices.put(token, user_id, device_id, DEVICE_TYPE))
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.warning("Device link failed", error=str(error))

    async def wait_background(self) -> None:
        """Wait for best-effort work such as device linking to settle."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # Avatar and profile

    async def complete_avatar(self, draft: AvatarDraft) -> Stage:
        """
        Store the avatar built from the wizard and enter the dashboard.

        Raises:
            ValidationError: A wizard step was left blank
            SessionExpired: The store rejected the credential
        """
        next_stage(self._session.stage, Trigger.AVATAR_COMPLETED)
        avatar = build_avatar(draft)

        await self.authorized(lambda t, uid: self.backend.avatars.put(t, uid, avatar))
        self._session.avatar = avatar
        await self.publish(AvatarCreatedEvent(
            character=avatar.character,
            emoji=avatar.emoji,
            name=avatar.name,
        ))
        return await self._transition(Trigger.AVATAR_COMPLETED)

    async def update_profile(self, fields: Dict[str, Any]) -> Optional[Profile]:
        """
        Merge partial profile fields into the stored profile.

        Accepts snake_case names or the backend's names. The age cohort cannot
        change after registration and is dropped. Does nothing without an
        active session, and logs rather than raises on failure.

        Returns:
            The merged profile, or None if nothing was stored
        """
        if self._session.identity is None or self._session.profile is None:
            self.logger.debug("Profile update without an active session")
            return None

        wire_names = set(PROFILE_WIRE_FIELDS.values())
        changes: Dict[str, Any] = {}
        for key, value in fields.items():
            wire = PROFILE_WIRE_FIELDS.get(key, key)
            if wire == "ageGroup":
                self.logger.warning("Ignoring age group change")
                continue
            if wire in ("id", "createdAt", "updatedAt"):
                continue
            if wire not in wire_names:
                self.logger.warning("Ignoring unknown profile field", field=key)
                continue
            changes[wire] = value

        if not changes:
            return self._session.profile.model_copy()

        try:
            profile = await self.authorized(
                lambda t, uid: self.backend.profiles.merge(t, uid, changes)
            )
        except SessionExpired:
            return None
        except BuddyError as e:
            self.logger.error("Error updating profile", error=e.message)
            return None

        self._session.profile = profile
        await self.publish(ProfileUpdatedEvent(changed=changes))
        return profile.model_copy()

    # Session lifecycle

    async def authorized(self, call: Callable[[str, str], Awaitable[T]]) -> T:
        """
        Run call(token, user_id) with the current credential.

        A missing or expired credential, or an Unauthorized answer, clears the
        session and forces the login stage.

        Raises:
            SessionExpired: The session was cleared
        """
        identity = self._session.identity
        if identity is None:
            raise SessionExpired("Not signed in")
        if identity.is_expired():
            await self._expire("Session expired. Please login again.")
            raise SessionExpired("Session expired. Please login again.")

        try:
            return await call(identity.token, identity.user_id)
        except Unauthorized as e:
            # A newer session may already have replaced the one this call used
            if self._session.identity is identity:
                await self._expire(e.message)
            raise SessionExpired(e.message) from e

    async def logout(self) -> Stage:
        next_stage(self._session.stage, Trigger.LOGOUT)
        await self._sign_out()
        self._clear()
        return await self._transition(Trigger.LOGOUT)

    async def _expire(self, reason: str) -> None:
        self.logger.warning("Session expired", reason=reason)
        await self._sign_out()
        self._clear()
        self._session.last_error = reason
        await self.publish(SessionExpiredEvent(reason=reason))
        await self._transition(Trigger.SESSION_EXPIRED)

    async def _sign_out(self) -> None:
        try:
            await self.backend.identity.sign_out()
        except BuddyError as e:
            self.logger.warning("Sign out failed", error=e.message)

    def _clear(self) -> None:
        self._session.identity = None
        self._session.profile = None
        self._session.avatar = None
        self._session.selected_cohort = None
        self._session.last_error = None

    async def _transition(self, trigger: Trigger) -> Stage:
        previous = self._session.stage
        stage = next_stage(previous, trigger)
        if stage is Stage.DASHBOARD and (
                self._session.profile is None or self._session.avatar is None):
            raise InvalidTransition(previous, trigger)

        self._session.stage = stage
        cohort = self._session.cohort
        self.logger.info("Stage changed", stage=stage.value, previous=previous.value, trigger=trigger.value)
        await self.publish(StageChangedEvent(
            stage=stage.value,
            previous_stage=previous.value,
            trigger=trigger.value,
            cohort=cohort.value if cohort else None,
        ))
        return stage
