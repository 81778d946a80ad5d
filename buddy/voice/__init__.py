"""
Voice input and output: capture, speech synthesis and the talking avatar.
"""

from .avatar_sync import TalkingAvatarSync
from .capture import VoiceCaptureController, VoiceCaptureState
from .speech import (
    DurationEstimator,
    LinearDurationEstimator,
    SpeechOutputController,
    Utterance,
    VoiceParams,
    voice_params_for,
)

__all__ = [
    "DurationEstimator",
    "LinearDurationEstimator",
    "SpeechOutputController",
    "TalkingAvatarSync",
    "Utterance",
    "VoiceCaptureController",
    "VoiceCaptureState",
    "VoiceParams",
    "voice_params_for",
]
