"""Suppression of repeated submissions of identical signatures."""

import hashlib
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ...schemas.recognition import RecognitionResult
from ...utils.logging import log_with_category, setup_logging
from ..audio_processor.signature_format import Signature

logger = setup_logging(__name__)


@dataclass
class CachedOutcome:
    """Service answer for a signature; ``result`` is None when nothing matched."""

    result: Optional[RecognitionResult]
    stored_at: float


class SignatureCache:
    """Remembers service answers keyed by the content of the encoded signature."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[str, CachedOutcome] = {}

    @staticmethod
    def fingerprint(signature: Signature) -> str:
        return hashlib.sha256(signature.encode()).hexdigest()

    def lookup(self, signature: Signature) -> Optional[CachedOutcome]:
        """Return the cached outcome for a signature still within its time to live."""
        self._purge()
        entry = self._entries.get(self.fingerprint(signature))
        if entry is not None:
            log_with_category(logger, "RECOGNIZER", "debug", "Duplicate signature, replaying cached outcome")
        return entry

    def store(self, signature: Signature, result: Optional[RecognitionResult]) -> None:
        self._entries[self.fingerprint(signature)] = CachedOutcome(result, self.clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        self._purge()
        return len(self._entries)

    def _purge(self) -> None:
        now = self.clock()
        expired = [key for key, entry in self._entries.items() if now - entry.stored_at >= self.ttl_seconds]
        for key in expired:
            del self._entries[key]
