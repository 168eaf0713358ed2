"""
Microphone capture through sounddevice.

Frames delivered by PortAudio are down-mixed to mono, decimated to 16 kHz
and pushed to a queue in batches of ``buffer_size`` samples. The queue is
closed with a ``None`` sentinel when the capture stops.
"""

import queue
import threading
from typing import List, Optional

import numpy as np

from ...core.config import RecognitionConfig, get_settings
from ...core.config.constants import SIGNATURE_SAMPLE_RATE
from ...core.exceptions import AudioError
from ...utils.logging import log_with_category, setup_logging

logger = setup_logging(__name__)


def _sounddevice():
    # Imported on use: loading the module needs the PortAudio shared library
    try:
        import sounddevice
    except OSError as e:
        raise AudioError(f"PortAudio is not available: {e}") from e
    return sounddevice


def downmix_to_mono(frames: np.ndarray) -> np.ndarray:
    """Average a stereo block; other layouts keep their first channel."""
    frames = np.asarray(frames)
    if frames.ndim == 1:
        return frames.astype(np.int16, copy=False)
    if frames.shape[1] == 2:
        return frames.astype(np.int32).mean(axis=1).astype(np.int16)
    return frames[:, 0].astype(np.int16)


class CaptureSession:
    """A running input stream and the queue its sample batches land in."""

    def __init__(self, source_rate: int, buffer_size: int):
        if source_rate < SIGNATURE_SAMPLE_RATE:
            raise AudioError(
                f"Capture rate {source_rate} Hz is below {SIGNATURE_SAMPLE_RATE} Hz"
            )
        if source_rate % SIGNATURE_SAMPLE_RATE:
            raise AudioError(
                f"Capture rate {source_rate} Hz is not a multiple of {SIGNATURE_SAMPLE_RATE} Hz"
            )
        self.source_rate = source_rate
        self.buffer_size = buffer_size
        self.samples: "queue.Queue[Optional[np.ndarray]]" = queue.Queue()

        self._step = source_rate // SIGNATURE_SAMPLE_RATE
        self._phase = 0
        self._batch = np.zeros(buffer_size, dtype=np.int16)
        self._batch_fill = 0
        self._stream = None
        self._lock = threading.Lock()
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def attach(self, stream) -> None:
        self._stream = stream

    def handle_frames(self, indata, frames, time_info, status) -> None:
        """sounddevice callback; also usable directly with a frames array."""
        if status:
            log_with_category(logger, "RECORDER", "debug", f"Input stream status: {status}")
        if self._stopped:
            return

        mono = downmix_to_mono(indata)
        if self._step > 1:
            decimated = mono[self._phase::self._step]
            self._phase = (self._phase - len(mono)) % self._step
        else:
            decimated = mono

        position = 0
        while position < len(decimated):
            take = min(self.buffer_size - self._batch_fill, len(decimated) - position)
            self._batch[self._batch_fill:self._batch_fill + take] = decimated[position:position + take]
            self._batch_fill += take
            position += take
            if self._batch_fill == self.buffer_size:
                self.samples.put(self._batch.copy())
                self._batch_fill = 0

    def stop(self) -> None:
        """Stop and close the input stream, then close the queue."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except Exception as e:
                log_with_category(logger, "RECORDER", "warning", f"Error closing input stream: {e}")
        self.samples.put(None)
        log_with_category(logger, "RECORDER", "info", "Capture stopped")


class AudioRecorder:
    """Opens input devices and produces 16 kHz mono sample batches."""

    def __init__(self, config: Optional[RecognitionConfig] = None):
        self.config = config or get_settings()

    @staticmethod
    def list_input_devices() -> List[str]:
        """Names of the devices that can record.

        Raises:
            AudioError: If the device list cannot be queried
        """
        sd = _sounddevice()
        try:
            devices = sd.query_devices()
        except Exception as e:
            raise AudioError(f"Cannot list audio devices: {e}") from e
        return [device["name"] for device in devices if device["max_input_channels"] > 0]

    def _resolve_device(self, sd, device_name: Optional[str]) -> int:
        try:
            devices = sd.query_devices()
        except Exception as e:
            raise AudioError(f"Cannot list audio devices: {e}") from e

        if device_name is None:
            default_input = sd.default.device[0]
            if default_input is None or default_input < 0:
                raise AudioError("No default input device available")
            return default_input

        for index, device in enumerate(devices):
            if device["name"] == device_name and device["max_input_channels"] > 0:
                return index
        raise AudioError(f"Device '{device_name}' not found")

    def start_recording(self, device_name: Optional[str] = None) -> CaptureSession:
        """Open an input device and start capturing.

        Args:
            device_name: Exact device name, or None for the default input

        Returns:
            CaptureSession: The running capture

        Raises:
            AudioError: If the device is missing or cannot be opened
        """
        sd = _sounddevice()
        device = self._resolve_device(sd, device_name)
        info = sd.query_devices(device)
        channels = max(1, min(2, int(info["max_input_channels"])))

        session = CaptureSession(self.config.sample_rate, self.config.buffer_size)
        try:
            stream = sd.InputStream(
                device=device,
                channels=channels,
                samplerate=self.config.sample_rate,
                dtype="int16",
                callback=session.handle_frames,
            )
            stream.start()
        except Exception as e:
            raise AudioError(f"Cannot open input device '{info['name']}': {e}") from e
        session.attach(stream)

        log_with_category(
            logger,
            "RECORDER",
            "info",
            f"Recording from '{info['name']}' at {self.config.sample_rate} Hz, {channels} channel(s)",
        )
        return session
