"""
Platform adapters for microphone capture, speech recognition and speech output.
"""

from buddy.core.config import CaptureConfig, SpeechBackend, SpeechConfig

from .base import (
    NullSynthesizer,
    PlatformAdapter,
    RecognitionSession,
    SpeechSynthesizer,
    VoicePlatform,
)


def create_voice_platform(config: CaptureConfig) -> VoicePlatform:
    from .desktop import DesktopVoicePlatform
    return DesktopVoicePlatform(config)


def create_synthesizer(config: SpeechConfig) -> SpeechSynthesizer:
    """Build the configured synthesizer. ElevenLabs pulls in sounddevice, so import it lazily."""
    if config.backend == SpeechBackend.ELEVENLABS:
        from .elevenlabs import ElevenLabsSynthesizer
        return ElevenLabsSynthesizer(config)
    return NullSynthesizer(config)


__all__ = [
    "NullSynthesizer",
    "PlatformAdapter",
    "RecognitionSession",
    "SpeechSynthesizer",
    "VoicePlatform",
    "create_synthesizer",
    "create_voice_platform",
]
