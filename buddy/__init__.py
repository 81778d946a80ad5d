"""
Your Buddy - an age-aware AI companion for every stage of life.

This package contains the coordination core of the Buddy companion application:
onboarding and session management, the avatar wizard, and the per-cohort
conversational companion with voice input and speech output.

Features:
- Explicit onboarding state machine (landing -> login/register -> avatar -> dashboard)
- Deterministic keyword-based response selection per age cohort
- Microphone probing and single-utterance voice capture
- Speech synthesis with talking-avatar timing
"""

__version__ = "1.0.0"
