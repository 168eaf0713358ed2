"""Tests for recognition orchestration."""

import time
from unittest.mock import Mock

import pytest

from songrec.core.exceptions import (
    AudioError,
    AudioTooShortError,
    NoMatchError,
    ServiceUnavailableError,
)
from songrec.detection.audio_processor.recorder import CaptureSession
from songrec.detection.audio_processor.signature_format import Signature
from songrec.detection.recognizer import RecognitionStream, SongRec
from songrec.tests.audio_samples import SAMPLE_RATE, make_silence

BATCH = 4096


@pytest.fixture
def fake_service():
    service = Mock()
    service.close = Mock()
    return service


@pytest.fixture
def fake_recorder():
    return Mock()


@pytest.fixture
def songrec(config, fake_service, fake_recorder):
    """Create a SongRec wired to mocks."""
    return SongRec(config, service_factory=lambda _config: fake_service, recorder=fake_recorder)


def loaded_capture(seconds: float, end: bool = True) -> CaptureSession:
    """A capture session pre-filled with silent batches."""
    capture = CaptureSession(SAMPLE_RATE, BATCH)
    samples = make_silence(seconds)
    for start in range(0, len(samples), BATCH):
        capture.samples.put(samples[start:start + BATCH])
    if end:
        capture.samples.put(None)
    return capture


class TestOneShot:
    """Test file and buffer recognition."""

    def test_recognize_from_samples(self, songrec, fake_service, recognition_result):
        fake_service.recognize.return_value = recognition_result

        result = songrec.recognize_from_samples(make_silence(20))

        assert result == recognition_result
        signature = fake_service.recognize.call_args.args[0]
        assert isinstance(signature, Signature)
        # Centered 12 second excerpt
        assert signature.number_samples == 12 * SAMPLE_RATE

    def test_short_recording_used_whole(self, songrec, fake_service, recognition_result):
        fake_service.recognize.return_value = recognition_result
        songrec.recognize_from_samples(make_silence(5))
        assert fake_service.recognize.call_args.args[0].number_samples == 5 * SAMPLE_RATE

    def test_too_short(self, songrec, fake_service):
        with pytest.raises(AudioTooShortError):
            songrec.recognize_from_samples(make_silence(2))
        fake_service.recognize.assert_not_called()

    def test_recognize_from_file(self, songrec, fake_service, recognition_result, mocker):
        load = mocker.patch(
            "songrec.detection.recognizer.load_audio_file", return_value=make_silence(15)
        )
        fake_service.recognize.return_value = recognition_result

        assert songrec.recognize_from_file("song.mp3") == recognition_result
        load.assert_called_once_with("song.mp3", SAMPLE_RATE)

    def test_recognize_once_dispatches(self, songrec, fake_service, recognition_result, mocker, tmp_path):
        load = mocker.patch(
            "songrec.detection.recognizer.load_audio_file", return_value=make_silence(4)
        )
        fake_service.recognize.return_value = recognition_result

        songrec.recognize_once(tmp_path / "song.wav")
        assert load.call_count == 1
        songrec.recognize_once(make_silence(4))
        assert load.call_count == 1
        assert fake_service.recognize.call_count == 2

    def test_network_errors_propagate(self, songrec, fake_service):
        fake_service.recognize.side_effect = ServiceUnavailableError("All API requests failed", attempts=3)
        with pytest.raises(ServiceUnavailableError):
            songrec.recognize_from_samples(make_silence(4))

    def test_close(self, songrec, fake_service):
        songrec.close()
        fake_service.close.assert_called_once()


class TestDeduplication:
    """Test suppression of identical submissions."""

    def test_duplicate_replays_result(self, config, fake_service, fake_recorder, recognition_result):
        songrec = SongRec(
            config.updated(deduplicate_requests=True),
            service_factory=lambda _config: fake_service,
            recorder=fake_recorder,
        )
        fake_service.recognize.return_value = recognition_result

        first = songrec.recognize_from_samples(make_silence(4))
        second = songrec.recognize_from_samples(make_silence(4))

        assert first == second == recognition_result
        assert fake_service.recognize.call_count == 1

    def test_duplicate_replays_no_match(self, config, fake_service, fake_recorder):
        songrec = SongRec(
            config.updated(deduplicate_requests=True),
            service_factory=lambda _config: fake_service,
            recorder=fake_recorder,
        )
        fake_service.recognize.side_effect = NoMatchError("No track found in response")

        for _ in range(2):
            with pytest.raises(NoMatchError):
                songrec.recognize_from_samples(make_silence(4))
        assert fake_service.recognize.call_count == 1

    def test_unreachable_service_is_retried(self, config, fake_service, fake_recorder, recognition_result):
        songrec = SongRec(
            config.updated(deduplicate_requests=True),
            service_factory=lambda _config: fake_service,
            recorder=fake_recorder,
        )
        fake_service.recognize.side_effect = [
            ServiceUnavailableError("All API requests failed", attempts=3),
            recognition_result,
        ]
        with pytest.raises(ServiceUnavailableError):
            songrec.recognize_from_samples(make_silence(4))
        assert songrec.recognize_from_samples(make_silence(4)) == recognition_result

    def test_disabled(self, songrec, fake_service, recognition_result):
        fake_service.recognize.return_value = recognition_result
        songrec.recognize_from_samples(make_silence(4))
        songrec.recognize_from_samples(make_silence(4))
        assert fake_service.recognize.call_count == 2


class TestContinuous:
    """Test continuous recognition sessions."""

    def test_outcomes_in_window_order(self, songrec, fake_service, fake_recorder, recognition_result):
        capture = loaded_capture(25)
        fake_recorder.start_recording.return_value = capture
        fake_service.recognize.side_effect = [recognition_result, NoMatchError("No track found in response")]

        stream = songrec.recognize_continuously("USB Microphone")
        outcomes = list(stream)

        fake_recorder.start_recording.assert_called_once_with("USB Microphone")
        assert len(outcomes) == 2
        assert outcomes[0] == recognition_result
        assert isinstance(outcomes[1], NoMatchError)
        assert capture.stopped
        assert stream.next_result(timeout=0.1) is None

    def test_errors_do_not_end_session(self, songrec, fake_service, fake_recorder, recognition_result):
        fake_recorder.start_recording.return_value = loaded_capture(25)
        fake_service.recognize.side_effect = [
            ServiceUnavailableError("All API requests failed", attempts=3),
            recognition_result,
        ]

        outcomes = list(songrec.recognize_continuously())

        assert isinstance(outcomes[0], ServiceUnavailableError)
        assert outcomes[1] == recognition_result

    def test_session_deduplicates(self, config, fake_service, fake_recorder, recognition_result):
        songrec = SongRec(
            config.updated(deduplicate_requests=True),
            service_factory=lambda _config: fake_service,
            recorder=fake_recorder,
        )
        fake_recorder.start_recording.return_value = loaded_capture(25)
        fake_service.recognize.return_value = recognition_result

        outcomes = list(songrec.recognize_continuously())

        # Two identical silent windows, one submission
        assert outcomes == [recognition_result, recognition_result]
        assert fake_service.recognize.call_count == 1

    def test_each_session_has_its_own_client(self, config, fake_recorder, recognition_result):
        services = []

        def factory(_config):
            service = Mock()
            service.recognize.return_value = recognition_result
            services.append(service)
            return service

        songrec = SongRec(config, service_factory=factory, recorder=fake_recorder)
        fake_recorder.start_recording.return_value = loaded_capture(13)
        list(songrec.recognize_continuously())

        assert len(services) == 2
        services[0].recognize.assert_not_called()
        services[1].recognize.assert_called_once()
        services[1].close.assert_called_once()

    def test_start_failure_is_raised(self, songrec, fake_recorder):
        fake_recorder.start_recording.side_effect = AudioError("Device 'Nope' not found")
        with pytest.raises(AudioError, match="Nope"):
            songrec.recognize_continuously("Nope")

    def test_close_stops_capture(self, songrec, fake_recorder):
        capture = loaded_capture(1, end=False)
        fake_recorder.start_recording.return_value = capture

        stream = songrec.recognize_continuously()
        assert stream.try_next() is None
        stream.close(timeout=5)

        assert stream.closed
        assert capture.stopped
        assert stream.next_result(timeout=1) is None
        assert list(stream) == []

    def test_context_manager_closes(self, songrec, fake_recorder):
        capture = loaded_capture(1, end=False)
        fake_recorder.start_recording.return_value = capture

        with songrec.recognize_continuously() as stream:
            assert isinstance(stream, RecognitionStream)
        deadline = time.monotonic() + 5
        while not capture.stopped and time.monotonic() < deadline:
            time.sleep(0.05)
        assert capture.stopped

    def test_next_result_timeout(self, songrec, fake_recorder):
        fake_recorder.start_recording.return_value = loaded_capture(1, end=False)
        stream = songrec.recognize_continuously()
        started = time.monotonic()
        assert stream.next_result(timeout=0.2) is None
        assert time.monotonic() - started >= 0.15
        stream.close(timeout=5)

    def test_recognition_interval_paces_submissions(self, config, fake_service, fake_recorder, recognition_result):
        songrec = SongRec(
            config.updated(recognition_interval=0.5, max_audio_duration=3.0),
            service_factory=lambda _config: fake_service,
            recorder=fake_recorder,
        )
        times = []
        fake_service.recognize.side_effect = lambda signature: times.append(time.monotonic()) or recognition_result
        fake_recorder.start_recording.return_value = loaded_capture(7)

        outcomes = list(songrec.recognize_continuously())

        assert len(outcomes) == 2
        assert times[1] - times[0] >= 0.45
