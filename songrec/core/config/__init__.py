"""Configuration module for the recognition client."""

from .constants import SAMPLE_RATE_IDS, SIGNATURE_SAMPLE_RATE
from .settings import RecognitionConfig, get_settings

__all__ = [
    "get_settings",
    "RecognitionConfig",
    "SAMPLE_RATE_IDS",
    "SIGNATURE_SAMPLE_RATE",
]
