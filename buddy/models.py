"""
Domain models for the Buddy companion.

Profiles and avatars travel to and from the hosted backend, so they keep the
backend's camelCase field names as aliases (ageGroup, parentEmail, language).
"""

import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class Cohort(str, Enum):
    """Age-group classification that selects dashboard, replies and voice."""
    KIDS = "kids"
    TEENS = "teens"
    YOUNG_ADULT = "youngAdult"
    ADULT = "adult"
    SENIOR = "senior"

    @property
    def age_group(self) -> str:
        """Identifier used by the backend and the age-group selector."""
        return _AGE_GROUP_IDS[self]

    @property
    def response_pool(self) -> str:
        """Which reply pool the response engine draws from."""
        return _RESPONSE_POOLS[self]

    @property
    def requires_guardian(self) -> bool:
        """
        Whether registration needs a parent or family email.

        youngAdult is included alongside kids and teens; whether 18-20 really
        needs guardian consent is an open product question.
        """
        return self in (Cohort.KIDS, Cohort.TEENS, Cohort.YOUNG_ADULT, Cohort.SENIOR)

    @classmethod
    def parse(cls, value) -> "Cohort":
        """Accept either a cohort name ('kids') or an age-group id ('6-12')."""
        if isinstance(value, cls):
            return value
        for cohort, age_group in _AGE_GROUP_IDS.items():
            if value == age_group:
                return cohort
        return cls(value)


_AGE_GROUP_IDS = {
    Cohort.KIDS: "6-12",
    Cohort.TEENS: "13-17",
    Cohort.YOUNG_ADULT: "18-20",
    Cohort.ADULT: "21-40",
    Cohort.SENIOR: "senior",
}

_RESPONSE_POOLS = {
    Cohort.KIDS: "kids",
    Cohort.TEENS: "teens",
    Cohort.YOUNG_ADULT: "adults",
    Cohort.ADULT: "adults",
    Cohort.SENIOR: "seniors",
}


class Stage(str, Enum):
    """Onboarding stages. LOGIN is the auth choice with the login form shown."""
    LANDING = "landing"
    LOGIN = "login"
    AUTHENTICATING = "authenticating"
    AGE_SELECT = "ageSelect"
    REGISTERING = "registering"
    CREATING_AVATAR = "creatingAvatar"
    DASHBOARD = "dashboard"
    ERROR = "error"


class Speaker(str, Enum):
    USER = "user"
    COMPANION = "companion"


class Emotion(str, Enum):
    NEUTRAL = "neutral"
    HAPPY = "happy"
    THINKING = "thinking"


class Profile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    email: str
    age_cohort: Cohort = Field(alias="ageGroup")
    parent_or_family_email: Optional[str] = Field(default=None, alias="parentEmail")
    preferred_language: str = Field(default="English", alias="language")
    freeform_habits_notes: str = Field(default="", alias="habits")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    @field_validator("age_cohort", mode="before")
    @classmethod
    def parse_cohort(cls, v):
        return Cohort.parse(v)

    @field_validator("preferred_language", mode="before")
    @classmethod
    def default_language(cls, v):
        return v or "English"

    @field_serializer("age_cohort")
    def serialize_cohort(self, cohort: Cohort):
        return cohort.age_group

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# Maps the snake_case names callers use to the backend field names.
PROFILE_WIRE_FIELDS = {
    name: field.alias or name for name, field in Profile.model_fields.items()
}


class ProfileDraft(BaseModel):
    """Everything the registration form collects."""
    name: str = ""
    email: str = ""
    password: str = ""
    parent_or_family_email: Optional[str] = None
    preferred_language: str = "English"
    link_device: bool = False


class Avatar(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    favorite_color: str = Field(alias="favoriteColor")
    character: str
    personality: str
    name: str
    emoji: str

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class AvatarDraft(BaseModel):
    """The four answers collected by the avatar wizard."""
    favorite_color: str = ""
    character: str = ""
    personality: str = ""
    name: str = ""


class AuthToken(BaseModel):
    token: str
    user_id: str
    expires_at: float

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at


class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    speaker: Speaker
    text: str


class HealthReading(BaseModel):
    """A wellness snapshot shown on the adult and senior dashboards."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    heart_rate: Optional[int] = Field(default=None, alias="heartRate")
    blood_pressure: Optional[str] = Field(default=None, alias="bloodPressure")
    blood_sugar: Optional[float] = Field(default=None, alias="bloodSugar")
    oxygen_level: Optional[float] = Field(default=None, alias="oxygenLevel")
    steps: Optional[int] = None
    sleep_minutes: Optional[int] = Field(default=None, alias="sleepMinutes")
    timestamp: Optional[str] = None


class Session(BaseModel):
    """
    The onboarding session. Owned by the session machine; everything else
    receives copies.
    """
    identity: Optional[AuthToken] = None
    profile: Optional[Profile] = None
    avatar: Optional[Avatar] = None
    stage: Stage = Stage.LANDING
    selected_cohort: Optional[Cohort] = None
    last_error: Optional[str] = None

    @property
    def identity_token(self) -> Optional[str]:
        return self.identity.token if self.identity else None

    @property
    def cohort(self) -> Optional[Cohort]:
        if self.profile is not None:
            return self.profile.age_cohort
        return self.selected_cohort
