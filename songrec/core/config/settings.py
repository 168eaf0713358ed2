"""Recognition configuration."""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError
from .constants import CACHE_MEDIUM, SHAZAM_API_BASE_URL, SIGNATURE_SAMPLE_RATE


class RecognitionConfig(BaseSettings):
    """Settings shared by the fingerprinting, capture and network layers.

    Values come from keyword arguments first, then ``SONGREC_*`` environment
    variables, then a ``.env`` file.
    """

    # Recognition
    sensitivity: float = 0.5
    min_audio_duration: float = Field(3.0, gt=0)
    max_audio_duration: float = Field(12.0, gt=0)
    continuous_recognition: bool = False
    recognition_interval: float = Field(5.0, ge=0)

    # Audio capture
    sample_rate: int = Field(SIGNATURE_SAMPLE_RATE, ge=SIGNATURE_SAMPLE_RATE)
    buffer_size: int = Field(4096, gt=0)

    # Network
    api_base_url: str = SHAZAM_API_BASE_URL
    network_timeout: float = Field(20.0, gt=0)
    max_attempts: int = Field(3, ge=1)
    retry_backoff: float = Field(2.0, ge=0)

    # De-duplication
    deduplicate_requests: bool = True
    deduplication_cache_duration: int = Field(CACHE_MEDIUM, ge=0)

    # Logging
    quiet_mode: bool = True
    log_file: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="SONGREC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("sensitivity")
    @classmethod
    def clamp_sensitivity(cls, value: float) -> float:
        return min(max(value, 0.0), 1.0)

    @field_validator("sample_rate")
    @classmethod
    def check_sample_rate(cls, value: int) -> int:
        # Capture is decimated by an integer factor down to 16 kHz
        if value % SIGNATURE_SAMPLE_RATE:
            raise ValueError(f"sample_rate must be a multiple of {SIGNATURE_SAMPLE_RATE} Hz")
        return value

    @model_validator(mode="after")
    def check_durations(self) -> "RecognitionConfig":
        if self.max_audio_duration < self.min_audio_duration:
            raise ValueError("max_audio_duration must not be shorter than min_audio_duration")
        return self

    def updated(self, **changes: Any) -> "RecognitionConfig":
        """Return a validated copy with ``changes`` applied.

        Raises:
            ConfigurationError: If a changed value is invalid
        """
        try:
            return type(self)(**{**self.model_dump(), **changes})
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "RecognitionConfig":
        """Load a configuration saved with :meth:`to_file`.

        Args:
            path: JSON file to read

        Returns:
            RecognitionConfig: The loaded configuration

        Raises:
            ConfigurationError: If the file is unreadable, malformed or invalid
        """
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigurationError(f"Cannot read {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Malformed configuration in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration in {path} must be a JSON object")

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e

    def to_file(self, path: Union[str, Path]) -> None:
        """Write the configuration as JSON text."""
        try:
            Path(path).write_text(self.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot write {path}: {e}") from e


@lru_cache()
def get_settings() -> RecognitionConfig:
    """Get the default configuration instance."""
    return RecognitionConfig()
