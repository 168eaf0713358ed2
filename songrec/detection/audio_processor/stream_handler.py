"""Module for turning a live sample stream into signatures."""

from typing import Any, Dict, Optional

import numpy as np

from ...core.config.constants import SIGNATURE_SAMPLE_RATE
from ...core.exceptions import InvalidInputError
from ...utils.logging import log_with_category, setup_logging
from .signature_format import Signature
from .signature_generator import HOP_SIZE, SignatureGenerator

logger = setup_logging(__name__)

DEFAULT_WINDOW_SECONDS = 12.0


class StreamHandler:
    """Accumulates 16 kHz mono samples into fixed-length signature windows."""

    def __init__(self, window_seconds: float = DEFAULT_WINDOW_SECONDS):
        """Initialize the stream handler.

        Args:
            window_seconds: Audio needed before a signature is emitted

        Raises:
            ValueError: If the window is shorter than one hop
        """
        window_samples = int(window_seconds * SIGNATURE_SAMPLE_RATE)
        if window_samples < HOP_SIZE:
            raise ValueError("Window must hold at least one hop of samples")

        self.window_samples = window_samples
        self.generator = SignatureGenerator()
        self.pending = np.zeros(HOP_SIZE, dtype=np.int16)
        self.pending_count = 0
        self.samples_processed = 0
        self.signatures_emitted = 0

        log_with_category(
            logger, "STREAM", "debug", f"StreamHandler initialized: window={window_samples} samples"
        )

    def accept(self, samples) -> Optional[Signature]:
        """Feed a batch of samples.

        Samples are analysed hop by hop; a remainder shorter than a hop is
        kept for the next call. Once the window is full the signature is
        returned, all state is reset and the rest of the batch is dropped.

        Args:
            samples: 1-D sequence of int16 samples

        Returns:
            The completed signature, or None while the window is filling

        Raises:
            InvalidInputError: If the batch is not one-dimensional
        """
        batch = np.asarray(samples)
        if batch.ndim != 1:
            raise InvalidInputError(f"Expected mono samples, got shape {batch.shape}")
        if batch.dtype != np.int16:
            batch = batch.astype(np.int16)

        position = 0
        total = len(batch)

        # Top up the partial hop left from the previous batch
        if self.pending_count:
            take = min(HOP_SIZE - self.pending_count, total)
            self.pending[self.pending_count:self.pending_count + take] = batch[:take]
            self.pending_count += take
            position = take
            if self.pending_count < HOP_SIZE:
                return None
            self.pending_count = 0
            signature = self._ingest(self.pending)
            if signature is not None:
                return signature

        while total - position >= HOP_SIZE:
            signature = self._ingest(batch[position:position + HOP_SIZE])
            position += HOP_SIZE
            if signature is not None:
                return signature

        remainder = total - position
        if remainder:
            self.pending[:remainder] = batch[position:]
            self.pending_count = remainder
        return None

    def progress(self) -> float:
        """Fraction of the current window already analysed, in [0, 1]."""
        return min(self.samples_processed / self.window_samples, 1.0)

    def reset(self) -> None:
        """Start a fresh window."""
        self.generator = SignatureGenerator()
        self.pending_count = 0
        self.samples_processed = 0

    def get_buffer_status(self) -> Dict[str, Any]:
        """Get the status of the current window.

        Returns:
            Dictionary with window status
        """
        return {
            "window_samples": self.window_samples,
            "samples_processed": self.samples_processed,
            "pending_samples": self.pending_count,
            "signatures_emitted": self.signatures_emitted,
            "fill_percentage": self.progress() * 100,
        }

    def _ingest(self, hop: np.ndarray) -> Optional[Signature]:
        self.generator.ingest_hop(hop)
        self.samples_processed += HOP_SIZE
        if self.samples_processed < self.window_samples:
            return None

        signature = self.generator.get_signature()
        self.signatures_emitted += 1
        log_with_category(
            logger,
            "STREAM",
            "info",
            f"Window complete: {signature.number_samples} samples, {signature.peak_count} peaks",
        )
        self.reset()
        return signature
