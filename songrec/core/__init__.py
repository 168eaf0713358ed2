"""Core configuration and error types."""

from .exceptions import (
    AudioError,
    AudioFileNotFoundError,
    AudioTooShortError,
    ConfigurationError,
    FingerprintingError,
    InvalidInputError,
    InvalidResponseError,
    NetworkError,
    NoMatchError,
    ServiceUnavailableError,
    SignatureFormatError,
    SongRecError,
    UnsupportedAudioError,
)

__all__ = [
    "AudioError",
    "AudioFileNotFoundError",
    "AudioTooShortError",
    "ConfigurationError",
    "FingerprintingError",
    "InvalidInputError",
    "InvalidResponseError",
    "NetworkError",
    "NoMatchError",
    "ServiceUnavailableError",
    "SignatureFormatError",
    "SongRecError",
    "UnsupportedAudioError",
]
