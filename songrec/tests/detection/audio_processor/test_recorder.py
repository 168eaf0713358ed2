"""Tests for the capture collaborator."""

from unittest.mock import MagicMock, Mock

import numpy as np
import pytest

from songrec.core.config import RecognitionConfig
from songrec.core.exceptions import AudioError
from songrec.detection.audio_processor.recorder import (
    AudioRecorder,
    CaptureSession,
    downmix_to_mono,
)

DEVICES = [
    {"name": "HDMI Output", "max_input_channels": 0},
    {"name": "USB Microphone", "max_input_channels": 1},
    {"name": "Line In", "max_input_channels": 2},
]


@pytest.fixture
def fake_sounddevice(mocker):
    """Replace the sounddevice module with a mock."""
    sd = MagicMock()
    sd.query_devices.side_effect = lambda device=None: DEVICES if device is None else DEVICES[device]
    sd.default.device = [2, 0]
    mocker.patch("songrec.detection.audio_processor.recorder._sounddevice", return_value=sd)
    return sd


def drain(session):
    batches = []
    while not session.samples.empty():
        batches.append(session.samples.get_nowait())
    return batches


class TestDownmix:
    def test_stereo_is_averaged(self):
        frames = np.array([[100, 300], [-100, -301], [32767, 32767]], dtype=np.int16)
        assert downmix_to_mono(frames).tolist() == [200, -200, 32767]

    def test_multichannel_keeps_first(self):
        frames = np.array([[1, 2, 3], [4, 5, 6]], dtype=np.int16)
        assert downmix_to_mono(frames).tolist() == [1, 4]

    def test_mono_passthrough(self):
        frames = np.array([[7], [8]], dtype=np.int16)
        assert downmix_to_mono(frames).tolist() == [7, 8]


class TestCaptureSession:
    """Test batching and decimation of captured frames."""

    def test_batches_of_buffer_size(self):
        session = CaptureSession(16000, buffer_size=100)
        session.handle_frames(np.ones((250, 1), dtype=np.int16), 250, None, None)
        batches = drain(session)
        assert [len(batch) for batch in batches] == [100, 100]
        assert all(batch.dtype == np.int16 for batch in batches)

    def test_decimation_across_callbacks(self):
        session = CaptureSession(48000, buffer_size=10)
        frames = np.arange(60, dtype=np.int16).reshape(-1, 1)
        # Split in uneven blocks; decimation must keep every third sample overall
        session.handle_frames(frames[:7], 7, None, None)
        session.handle_frames(frames[7:31], 24, None, None)
        session.handle_frames(frames[31:], 29, None, None)
        batches = drain(session)
        assert np.concatenate(batches).tolist() == list(range(0, 60, 3))

    def test_two_seconds_at_32k(self):
        session = CaptureSession(32000, buffer_size=16000)
        session.handle_frames(np.zeros((64000, 1), dtype=np.int16), 64000, None, None)
        assert sum(len(batch) for batch in drain(session)) == 32000

    def test_rate_not_multiple_of_16k_rejected(self):
        with pytest.raises(AudioError, match="not a multiple"):
            CaptureSession(44100, buffer_size=44100)

    def test_rate_below_16k_rejected(self):
        with pytest.raises(AudioError):
            CaptureSession(8000, buffer_size=10)

    def test_stop_closes_stream_and_queue(self):
        session = CaptureSession(16000, buffer_size=10)
        stream = Mock()
        session.attach(stream)
        session.stop()
        session.stop()
        stream.stop.assert_called_once()
        stream.close.assert_called_once()
        assert session.stopped
        assert session.samples.get_nowait() is None
        assert session.samples.empty()

    def test_frames_after_stop_ignored(self):
        session = CaptureSession(16000, buffer_size=10)
        session.stop()
        session.samples.get_nowait()
        session.handle_frames(np.ones((20, 1), dtype=np.int16), 20, None, None)
        assert session.samples.empty()


class TestAudioRecorder:
    """Test device listing and opening."""

    def test_list_input_devices(self, fake_sounddevice):
        assert AudioRecorder.list_input_devices() == ["USB Microphone", "Line In"]

    def test_list_failure(self, fake_sounddevice):
        fake_sounddevice.query_devices.side_effect = RuntimeError("no backend")
        with pytest.raises(AudioError):
            AudioRecorder.list_input_devices()

    def test_unknown_device(self, fake_sounddevice):
        recorder = AudioRecorder(RecognitionConfig())
        with pytest.raises(AudioError, match="Device 'Nope' not found"):
            recorder.start_recording("Nope")

    def test_output_only_device_not_selectable(self, fake_sounddevice):
        recorder = AudioRecorder(RecognitionConfig())
        with pytest.raises(AudioError):
            recorder.start_recording("HDMI Output")

    def test_start_named_device(self, fake_sounddevice):
        recorder = AudioRecorder(RecognitionConfig(sample_rate=48000, buffer_size=2048))
        session = recorder.start_recording("USB Microphone")

        kwargs = fake_sounddevice.InputStream.call_args.kwargs
        assert kwargs["device"] == 1
        assert kwargs["channels"] == 1
        assert kwargs["samplerate"] == 48000
        assert kwargs["dtype"] == "int16"
        assert kwargs["callback"] == session.handle_frames
        fake_sounddevice.InputStream.return_value.start.assert_called_once()
        assert session.buffer_size == 2048

    def test_start_default_device(self, fake_sounddevice):
        recorder = AudioRecorder(RecognitionConfig())
        recorder.start_recording()
        kwargs = fake_sounddevice.InputStream.call_args.kwargs
        assert kwargs["device"] == 2
        assert kwargs["channels"] == 2

    def test_open_failure(self, fake_sounddevice):
        fake_sounddevice.InputStream.side_effect = RuntimeError("device busy")
        recorder = AudioRecorder(RecognitionConfig())
        with pytest.raises(AudioError, match="device busy"):
            recorder.start_recording("Line In")
