"""
Configuration management for the Buddy companion.

Pydantic settings models with validation and environment variable integration.
Every section reads its own BUDDY_<SECTION>_ prefix and the project's .env file.
"""

from typing import Optional
from enum import Enum
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class LogLevel(str, Enum):
    """Log levels for the application."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

class BaseConfig(BaseSettings):
    """
    Base configuration class with common settings for all components.

    All other configuration classes should inherit from this class.
    """
    model_config = SettingsConfigDict(env_file=".env", env_prefix="BUDDY_", extra="ignore")

    debug: bool = False
    log_level: LogLevel = LogLevel.INFO

class EventConfig(BaseConfig):
    """Configuration for the event system."""
    model_config = SettingsConfigDict(env_file=".env", env_prefix="BUDDY_EVENT_", extra="ignore")

    max_trace_events: int = 1000
    tracing_enabled: bool = True

class ApiConfig(BaseConfig):
    """Configuration for the hosted identity and storage backend."""
    model_config = SettingsConfigDict(env_file=".env", env_prefix="BUDDY_API_", extra="ignore")

    base_url: str = "http://localhost:54321"
    anon_key: str = ""
    functions_path: str = "/functions/v1/make-server-c520032d"
    timeout: float = 15.0

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v):
        """Strip the trailing slash so paths can be joined safely."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("API base URL must start with http:// or https://")
        return v.rstrip("/")

class ConversationConfig(BaseConfig):
    """Configuration for dashboard conversations."""
    model_config = SettingsConfigDict(env_file=".env", env_prefix="BUDDY_CONVERSATION_", extra="ignore")

    thinking_delay: float = 1.0  # seconds before the companion answers
    default_language: str = "English"

    @field_validator("thinking_delay")
    @classmethod
    def validate_thinking_delay(cls, v):
        if v < 0:
            raise ValueError("Thinking delay cannot be negative")
        return v

class SpeechBackend(str, Enum):
    NULL = "null"
    ELEVENLABS = "elevenlabs"

class SpeechConfig(BaseConfig):
    """Configuration for speech synthesis and talking-avatar timing."""
    model_config = SettingsConfigDict(env_file=".env", env_prefix="BUDDY_SPEECH_", extra="ignore")

    backend: SpeechBackend = SpeechBackend.NULL
    ms_per_char: int = 60
    base_ms: int = 1000
    elevenlabs_api_key: str = Field(default="", validation_alias="ELEVENLABS_API_KEY")
    voice_id: str = "21m00Tcm4TlvDq8ikWAM"
    model_id: str = "eleven_flash_v2_5"
    sample_rate: int = 16000

    @field_validator("ms_per_char", "base_ms")
    @classmethod
    def validate_timing(cls, v):
        if v < 0:
            raise ValueError("Duration model parameters cannot be negative")
        return v

class RecognizerBackend(str, Enum):
    NULL = "null"
    WHISPER = "whisper"

class CaptureConfig(BaseConfig):
    """Configuration for microphone probing and single-utterance capture."""
    model_config = SettingsConfigDict(env_file=".env", env_prefix="BUDDY_CAPTURE_", extra="ignore")

    recognizer: RecognizerBackend = RecognizerBackend.NULL
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    model: str = "whisper-1"
    endpoint: str = "https://api.openai.com/v1"
    sample_rate: int = 16000
    channels: int = 1
    block_size: int = 640
    silence_threshold: float = 0.015  # RMS on float32 samples
    trailing_silence: float = 1.0  # seconds of silence that end an utterance
    no_speech_timeout: float = 6.0
    max_utterance: float = 15.0
    input_device: Optional[int] = None

    @field_validator("silence_threshold")
    @classmethod
    def validate_threshold(cls, v):
        if not 0.0 < v < 1.0:
            raise ValueError("Silence threshold must be between 0.0 and 1.0")
        return v

class ApplicationConfig(BaseConfig):
    """
    Main application configuration that combines all component configurations.
    """
    model_config = SettingsConfigDict(env_file=".env", env_prefix="BUDDY_", env_nested_delimiter="__", extra="ignore")

    event: EventConfig = Field(default_factory=EventConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    speech: SpeechConfig = Field(default_factory=SpeechConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)

def get_config() -> ApplicationConfig:
    """
    Get the application configuration.

    Returns:
        The validated ApplicationConfig instance
    """
    return ApplicationConfig()
