"""
Recognition orchestration.

One-shot recognition decodes a file (or takes a sample buffer), fingerprints
a centered excerpt and submits it. Continuous recognition starts a capture
and a worker thread per session; the worker feeds captured batches to a
StreamHandler and submits every completed window, delivering each outcome,
match or error, to the session's RecognitionStream in window order.
"""

import os
import queue
import threading
import time
import weakref
from typing import Callable, Optional, Union

import numpy as np

from ..core.config import RecognitionConfig, get_settings
from ..core.config.constants import SIGNATURE_SAMPLE_RATE
from ..core.exceptions import NoMatchError, SongRecError
from ..schemas.recognition import RecognitionResult
from ..utils.logging import log_with_category, setup_logging
from .audio_processor.audio_loader import load_audio_file, select_excerpt
from .audio_processor.recorder import AudioRecorder, CaptureSession
from .audio_processor.signature_format import Signature
from .audio_processor.signature_generator import SignatureGenerator
from .audio_processor.stream_handler import StreamHandler
from .external.deduplication import SignatureCache
from .external.shazam import ShazamService

logger = setup_logging(__name__)

Outcome = Union[RecognitionResult, SongRecError]

_END_OF_STREAM = object()
_POLL_INTERVAL = 0.25


class RecognitionStream:
    """Consumer side of a continuous recognition session.

    Items are ``RecognitionResult`` objects or ``SongRecError`` instances,
    in the order their windows completed. Closing the stream, or dropping
    every reference to it, stops the session and its capture.
    """

    def __init__(self, results: "queue.Queue", closed: threading.Event, worker: threading.Thread):
        self._results = results
        self._closed = closed
        self._worker = worker
        self._finished = False
        self._finalizer = weakref.finalize(self, closed.set)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def next_result(self, timeout: Optional[float] = None) -> Optional[Outcome]:
        """Wait for the next outcome.

        Args:
            timeout: Seconds to wait, or None to wait until one arrives

        Returns:
            The next outcome, or None on timeout or once the session ended
        """
        if self._finished:
            return None
        try:
            item = self._results.get(timeout=timeout)
        except queue.Empty:
            return None
        return self._unwrap(item)

    def try_next(self) -> Optional[Outcome]:
        """Return the next outcome if one is already waiting."""
        if self._finished:
            return None
        try:
            item = self._results.get_nowait()
        except queue.Empty:
            return None
        return self._unwrap(item)

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop the session; optionally wait for its worker to exit."""
        self._closed.set()
        if timeout is not None:
            self._worker.join(timeout)

    def __iter__(self):
        return self

    def __next__(self) -> Outcome:
        item = self.next_result()
        if item is None:
            raise StopIteration
        return item

    def __enter__(self) -> "RecognitionStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _unwrap(self, item) -> Optional[Outcome]:
        if item is _END_OF_STREAM:
            self._finished = True
            return None
        return item


class SongRec:
    """Entry point for one-shot and continuous recognition."""

    def __init__(
        self,
        config: Optional[RecognitionConfig] = None,
        service_factory: Callable[[RecognitionConfig], ShazamService] = ShazamService,
        recorder: Optional[AudioRecorder] = None,
    ):
        """
        Args:
            config: Recognition configuration (defaults to the cached settings)
            service_factory: Builds the recognition client; continuous
                sessions each get their own
            recorder: Capture collaborator used by continuous sessions
        """
        self.config = config or get_settings()
        self.service_factory = service_factory
        self.service = service_factory(self.config)
        self.recorder = recorder or AudioRecorder(self.config)
        self.cache = self._new_cache()

    def recognize_from_file(self, path: Union[str, os.PathLike]) -> RecognitionResult:
        """Recognise the song in an audio file.

        Raises:
            FingerprintingError: If the file is missing, undecodable or too short
            NetworkError: If the service is unreachable or recognises nothing
        """
        log_with_category(logger, "RECOGNIZER", "info", f"Recognising file {path}")
        samples = load_audio_file(path, SIGNATURE_SAMPLE_RATE)
        return self.recognize_from_samples(samples)

    def recognize_from_samples(self, samples) -> RecognitionResult:
        """Recognise a buffer of 16 kHz mono int16 samples."""
        signature = self.make_signature(samples)
        return self.submit(signature, self.service, self.cache)

    def recognize_once(self, source) -> RecognitionResult:
        """Recognise a file path or a sample buffer."""
        if isinstance(source, (str, os.PathLike)):
            return self.recognize_from_file(source)
        return self.recognize_from_samples(source)

    def make_signature(self, samples) -> Signature:
        excerpt = select_excerpt(
            np.asarray(samples, dtype=np.int16),
            SIGNATURE_SAMPLE_RATE,
            self.config.min_audio_duration,
            self.config.max_audio_duration,
        )
        return SignatureGenerator.make_signature_from_buffer(excerpt)

    def submit(
        self,
        signature: Signature,
        service: ShazamService,
        cache: Optional[SignatureCache] = None,
    ) -> RecognitionResult:
        """Submit a signature, replaying a cached answer for a recent duplicate.

        Only answers from the service are cached; an unreachable service is
        retried on the next identical signature.
        """
        if cache is not None:
            cached = cache.lookup(signature)
            if cached is not None:
                if cached.result is None:
                    raise NoMatchError("No track found in response (duplicate signature)")
                return cached.result

        try:
            result = service.recognize(signature)
        except NoMatchError:
            if cache is not None:
                cache.store(signature, None)
            raise
        if cache is not None:
            cache.store(signature, result)
        return result

    def recognize_continuously(self, device_name: Optional[str] = None) -> RecognitionStream:
        """Start a continuous recognition session.

        Args:
            device_name: Input device name, or None for the default input

        Returns:
            RecognitionStream: Outcomes of the session, one per window

        Raises:
            AudioError: If the capture cannot be started
        """
        capture = self.recorder.start_recording(device_name)
        results: "queue.Queue" = queue.Queue()
        closed = threading.Event()

        worker = threading.Thread(
            target=self._run_session,
            args=(capture, results, closed),
            name="songrec-session",
            daemon=True,
        )
        worker.start()
        log_with_category(logger, "RECOGNIZER", "info", "Continuous recognition started")
        return RecognitionStream(results, closed, worker)

    def close(self) -> None:
        self.service.close()

    def _new_cache(self) -> Optional[SignatureCache]:
        if not self.config.deduplicate_requests:
            return None
        return SignatureCache(self.config.deduplication_cache_duration)

    def _run_session(self, capture: CaptureSession, results: "queue.Queue", closed: threading.Event) -> None:
        handler = StreamHandler(self.config.max_audio_duration)
        service = self.service_factory(self.config)
        cache = self._new_cache()
        last_submission: Optional[float] = None

        try:
            while not closed.is_set():
                try:
                    batch = capture.samples.get(timeout=_POLL_INTERVAL)
                except queue.Empty:
                    continue
                if batch is None:
                    log_with_category(logger, "RECOGNIZER", "info", "Capture ended")
                    break

                signature = handler.accept(batch)
                if signature is None:
                    continue

                if last_submission is not None:
                    remaining = self.config.recognition_interval - (time.monotonic() - last_submission)
                    if remaining > 0 and closed.wait(remaining):
                        break
                last_submission = time.monotonic()

                try:
                    outcome: Outcome = self.submit(signature, service, cache)
                except SongRecError as e:
                    log_with_category(logger, "RECOGNIZER", "info", f"Window not recognised: {e}")
                    outcome = e

                if closed.is_set():
                    break
                results.put(outcome)
        finally:
            capture.stop()
            service.close()
            results.put(_END_OF_STREAM)
            log_with_category(logger, "RECOGNIZER", "info", "Continuous recognition stopped")
