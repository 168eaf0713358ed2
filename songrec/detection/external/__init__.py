"""Recognition service integration."""

from .deduplication import CachedOutcome, SignatureCache
from .shazam import (
    DEFAULT_TRANSPORT_LADDER,
    ShazamService,
    TransportPolicy,
    parse_recognition_response,
)

__all__ = [
    "CachedOutcome",
    "DEFAULT_TRANSPORT_LADDER",
    "ShazamService",
    "SignatureCache",
    "TransportPolicy",
    "parse_recognition_response",
]
