"""Audio file decoding and excerpt selection."""

import os
from pathlib import Path
from typing import Union

import librosa
import numpy as np

from ...core.config.constants import SIGNATURE_SAMPLE_RATE
from ...core.exceptions import AudioFileNotFoundError, AudioTooShortError, UnsupportedAudioError
from ...utils.logging import log_with_category, setup_logging

logger = setup_logging(__name__)


def float_to_pcm16(samples: np.ndarray) -> np.ndarray:
    """Convert float samples in [-1, 1] to int16, clipping out-of-range values."""
    scaled = np.clip(np.asarray(samples, dtype=np.float32) * 32767.0, -32768.0, 32767.0)
    return scaled.astype(np.int16)


def load_audio_file(
    path: Union[str, os.PathLike], sample_rate: int = SIGNATURE_SAMPLE_RATE
) -> np.ndarray:
    """Decode an audio file to mono int16 samples.

    Args:
        path: File to decode; any format librosa can read
        sample_rate: Target sample rate

    Returns:
        np.ndarray: Mono int16 samples at ``sample_rate``

    Raises:
        AudioFileNotFoundError: If the file does not exist
        UnsupportedAudioError: If the file cannot be decoded or holds no audio
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise AudioFileNotFoundError(f"File not found: {file_path}")

    log_with_category(logger, "RECOGNIZER", "debug", f"Decoding {file_path}")
    try:
        audio, _ = librosa.load(str(file_path), sr=sample_rate, mono=True)
    except Exception as e:
        raise UnsupportedAudioError(f"Cannot decode {file_path}: {e}") from e

    if audio.size == 0:
        raise UnsupportedAudioError(f"No audio samples in {file_path}")

    return float_to_pcm16(audio)


def select_excerpt(
    samples: np.ndarray,
    sample_rate: int = SIGNATURE_SAMPLE_RATE,
    min_seconds: float = 3.0,
    max_seconds: float = 12.0,
) -> np.ndarray:
    """Pick the part of a recording that gets fingerprinted.

    Recordings longer than ``max_seconds`` are cut to a centered excerpt of
    that length; shorter ones are used whole.

    Raises:
        AudioTooShortError: If the recording is shorter than ``min_seconds``
    """
    samples = np.asarray(samples)
    if len(samples) < int(min_seconds * sample_rate):
        raise AudioTooShortError(
            f"Audio too short: {len(samples) / sample_rate:.2f}s, need at least {min_seconds}s"
        )

    max_samples = int(max_seconds * sample_rate)
    if len(samples) <= max_samples:
        return samples

    start = len(samples) // 2 - max_samples // 2
    return samples[start:start + max_samples]
