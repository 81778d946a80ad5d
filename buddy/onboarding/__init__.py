"""
Onboarding: the session state machine and the avatar wizard helpers.
"""

from .avatar import CHARACTER_EMOJIS, DEFAULT_EMOJI, build_avatar, emoji_for
from .machine import OnboardingSessionMachine, TRANSITIONS, Trigger, next_stage

__all__ = [
    "CHARACTER_EMOJIS",
    "DEFAULT_EMOJI",
    "OnboardingSessionMachine",
    "TRANSITIONS",
    "Trigger",
    "build_avatar",
    "emoji_for",
    "next_stage",
]
