"""Shared fixtures for the test suite."""

import logging
from datetime import datetime, timezone

import pytest

from songrec.core.config import RecognitionConfig
from songrec.detection.audio_processor.signature_format import (
    FrequencyBand,
    FrequencyPeak,
    Signature,
)
from songrec.schemas.recognition import RecognitionResult

logging.basicConfig(level=logging.INFO)


@pytest.fixture
def config():
    """Configuration with deduplication off and no pacing between windows."""
    return RecognitionConfig(
        deduplicate_requests=False,
        recognition_interval=0.0,
        retry_backoff=2.0,
        max_attempts=3,
    )


@pytest.fixture
def sample_signature():
    """A small hand-built signature."""
    return Signature(
        sample_rate_hz=16000,
        number_samples=192000,
        peaks_by_band={
            FrequencyBand._250_520: [
                FrequencyPeak(10, 6500, 2200),
                FrequencyPeak(12, 7000, 2300),
            ],
            FrequencyBand._1450_3500: [
                FrequencyPeak(3, 9000, 15000),
                FrequencyPeak(400, 8000, 16000),
            ],
        },
    )


@pytest.fixture
def shazam_response():
    """A trimmed-down response from the tag endpoint."""
    return {
        "matches": [{"id": "12345", "offset": 31.2, "timeskew": 0.0, "frequencyskew": 0.0}],
        "timestamp": 1700000000,
        "timezone": "Europe/Paris",
        "tagid": "ABC",
        "track": {
            "key": "54321",
            "title": "Around the World",
            "subtitle": "Daft Punk",
            "genres": {"primary": "Electronic"},
            "images": {"coverart": "https://example.org/cover.jpg"},
            "sections": [
                {
                    "type": "SONG",
                    "metadata": [
                        {"title": "Album", "text": "Homework"},
                        {"title": "Label", "text": "Virgin"},
                        {"title": "Released", "text": "1997"},
                    ],
                }
            ],
        },
    }


@pytest.fixture
def recognition_result():
    return RecognitionResult(
        song_name="Around the World",
        artist_name="Daft Punk",
        album_name="Homework",
        track_key="54321",
        release_year="1997",
        genre="Electronic",
        recognition_timestamp=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )
