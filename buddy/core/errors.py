"""
Error taxonomy for the Buddy companion.

Nothing here is fatal to the process: callers degrade to a safe prior state
(the login screen, or text-only chat when voice is unavailable).
"""

from typing import Optional


class BuddyError(Exception):
    """Base class for all Buddy errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BuddyError):
    """A required field is missing or malformed. No state is mutated."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidCredentials(BuddyError):
    """The identity provider rejected the credentials; message is the provider's own."""


class DuplicateAccount(BuddyError):
    """An account with this email already exists."""


class Unauthorized(BuddyError):
    """A store or provider answered 401 for the bearer credential."""


class SessionExpired(BuddyError):
    """The session was cleared because its credential is no longer valid."""


class StoreError(BuddyError):
    """A network or storage failure unrelated to authorization."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidTransition(BuddyError):
    """A trigger was applied in a stage that does not accept it."""

    def __init__(self, stage, trigger):
        super().__init__(f"Cannot apply {trigger} in stage {stage}")
        self.stage = stage
        self.trigger = trigger


class CapabilityUnavailable(BuddyError):
    """Voice features are disabled; reason is human-readable."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class MicrophoneError(BuddyError):
    """
    Raised by a platform when the microphone cannot be opened.

    kind is one of 'permission', 'not_found' or 'other'.
    """

    def __init__(self, message: str, kind: str = "other"):
        super().__init__(message)
        self.kind = kind


class RecognitionError(BuddyError):
    """
    A recognition session ended without a transcript.

    code follows the speech-recognition error vocabulary: 'not-allowed',
    'service-not-allowed', 'no-speech', 'aborted', 'audio-capture', 'network'.
    """

    PERMISSION_CODES = frozenset({"not-allowed", "service-not-allowed"})

    def __init__(self, code: str, message: Optional[str] = None):
        super().__init__(message or code)
        self.code = code

    @property
    def is_permission_revoked(self) -> bool:
        return self.code in self.PERMISSION_CODES


class TransientRecognitionError(RecognitionError):
    """No speech, aborted or a timeout; swallowed by the capture controller."""
