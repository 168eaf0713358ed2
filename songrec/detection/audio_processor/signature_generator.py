"""
Spectral engine producing Shazam-compatible signatures.

Samples are fed 128 at a time (one hop). Each hop is written into a
2048-sample ring buffer, windowed with a Hann table and transformed; the
power spectrum is kept in a 256-slot history. A second history holds a
copy of each spectrum max-spread over neighbouring bins and over the
following hops. Once 46 hops have been processed, every new hop makes the
spectrum from 46 hops ago eligible for peak detection: a bin is kept when
it dominates its frequency and time neighbourhood in the spread history.

All intermediate buffers are allocated once per generator.
"""

import copy
import logging
from typing import Dict, List, Optional

import numpy as np

from ...core.config.constants import SIGNATURE_SAMPLE_RATE
from ...core.exceptions import InvalidInputError
from .signature_format import FrequencyBand, FrequencyPeak, Signature

logger = logging.getLogger(__name__)

HOP_SIZE = 128
WINDOW_SIZE = 2048
SPECTRUM_BINS = WINDOW_SIZE // 2 + 1
HISTORY_SIZE = 256
PEAK_DETECTION_LAG = 46

_RING_MASK = WINDOW_SIZE - 1
_HISTORY_MASK = HISTORY_SIZE - 1
_POWER_SCALE = float(1 << 17)
_POWER_FLOOR = 1e-10
_MIN_PEAK_POWER = 1.0 / 64.0

# Bins scanned for peaks; the neighbourhood offsets below stay in range
_FIRST_BIN = 10
_LAST_BIN = 1014
_NEIGHBOUR_BIN_OFFSETS = (-10, -7, -4, -3, 1, 2, 5, 8)
# Spread-history slots compared against, relative to the next spread slot
_OTHER_SLOT_OFFSETS = (-53, -45, 165, 172, 179, 186, 193, 200, 214, 221, 228, 235, 242, 249)
_TIME_SPREAD_OFFSETS = (1, 3, 6)

# Hann window of 2048 points without the zero end points
HANNING = np.hanning(WINDOW_SIZE + 2)[1:-1]

# (lowest Hz inclusive, highest Hz exclusive, band)
_BAND_LIMITS = (
    (250, 520, FrequencyBand._250_520),
    (520, 1450, FrequencyBand._520_1450),
    (1450, 3500, FrequencyBand._1450_3500),
    (3500, 5500, FrequencyBand._3500_5500),
)


def _log_magnitude(power: np.ndarray) -> np.ndarray:
    return np.maximum(np.log(power), 1.0 / 64.0) * 1477.3 + 6144.0


def band_for_frequency(frequency_hz: float) -> Optional[FrequencyBand]:
    """Return the band a frequency falls in, or None outside 250-5500 Hz."""
    for low, high, band in _BAND_LIMITS:
        if low <= frequency_hz < high:
            return band
    return None


class SignatureGenerator:
    """Incremental signature builder for 16 kHz mono int16 audio."""

    def __init__(self, sample_rate_hz: int = SIGNATURE_SAMPLE_RATE):
        self.sample_rate_hz = sample_rate_hz

        self.ring_buffer = np.zeros(WINDOW_SIZE, dtype=np.int16)
        self.ring_buffer_index = 0

        self.windowed_samples = np.zeros(WINDOW_SIZE, dtype=np.float64)

        self.fft_outputs = np.zeros((HISTORY_SIZE, SPECTRUM_BINS), dtype=np.float64)
        self.fft_outputs_index = 0

        self.spread_fft_outputs = np.zeros((HISTORY_SIZE, SPECTRUM_BINS), dtype=np.float64)
        self.spread_fft_outputs_index = 0

        self.num_spread_ffts_done = 0

        self._candidates = np.zeros(_LAST_BIN - _FIRST_BIN + 1, dtype=np.float64)
        self._neighbour_max = np.zeros_like(self._candidates)
        self._mask = np.zeros(self._candidates.shape, dtype=bool)
        self._scratch_mask = np.zeros_like(self._mask)

        self.number_samples = 0
        self.peaks_by_band: Dict[FrequencyBand, List[FrequencyPeak]] = {}

    def ingest_hop(self, samples) -> None:
        """Consume exactly 128 samples.

        Args:
            samples: Sequence of 128 int16 samples

        Raises:
            InvalidInputError: If the hop does not hold 128 samples
        """
        hop = np.asarray(samples)
        if hop.shape != (HOP_SIZE,):
            raise InvalidInputError(f"Expected {HOP_SIZE} samples per hop, got shape {hop.shape}")

        self._do_fft(hop)
        self._do_peak_spreading()
        self.num_spread_ffts_done += 1
        if self.num_spread_ffts_done >= PEAK_DETECTION_LAG:
            self._do_peak_recognition()
        self.number_samples += HOP_SIZE

    def get_signature(self) -> Signature:
        """Return a snapshot of the peaks found so far."""
        return Signature(
            self.sample_rate_hz,
            self.number_samples,
            copy.deepcopy(self.peaks_by_band),
        )

    @classmethod
    def make_signature_from_buffer(cls, samples) -> Signature:
        """Build a signature from a whole buffer of 16 kHz int16 samples.

        Trailing samples that do not fill a hop are not analysed but are
        counted in the signature's sample total.
        """
        buffer = np.asarray(samples, dtype=np.int16)
        generator = cls()
        usable = len(buffer) - len(buffer) % HOP_SIZE
        for start in range(0, usable, HOP_SIZE):
            generator.ingest_hop(buffer[start:start + HOP_SIZE])
        signature = generator.get_signature()
        signature.number_samples = len(buffer)
        logger.debug(
            "Built signature from %d samples: %d peaks", len(buffer), signature.peak_count
        )
        return signature

    def _do_fft(self, hop: np.ndarray) -> None:
        start = self.ring_buffer_index
        self.ring_buffer[start:start + HOP_SIZE] = hop
        self.ring_buffer_index = (start + HOP_SIZE) & _RING_MASK

        # Oldest sample first: ring[(i + index) & mask] * hann[i]
        index = self.ring_buffer_index
        tail = WINDOW_SIZE - index
        np.multiply(self.ring_buffer[index:], HANNING[:tail], out=self.windowed_samples[:tail])
        np.multiply(self.ring_buffer[:index], HANNING[tail:], out=self.windowed_samples[tail:])

        spectrum = np.fft.rfft(self.windowed_samples)

        output = self.fft_outputs[self.fft_outputs_index]
        np.square(spectrum.real, out=output)
        output += np.square(spectrum.imag)
        output /= _POWER_SCALE
        np.maximum(output, _POWER_FLOOR, out=output)

        self.fft_outputs_index = (self.fft_outputs_index + 1) & _HISTORY_MASK

    def _do_peak_spreading(self) -> None:
        origin = self.fft_outputs[(self.fft_outputs_index - 1) & _HISTORY_MASK]
        spread = self.spread_fft_outputs[self.spread_fft_outputs_index]

        # Frequency spreading: each bin takes the max of itself and the next two
        np.maximum(origin[:-2], origin[1:-1], out=spread[:-2])
        np.maximum(spread[:-2], origin[2:], out=spread[:-2])
        spread[-2:] = origin[-2:]

        # Time spreading into earlier slots
        for offset in _TIME_SPREAD_OFFSETS:
            earlier = self.spread_fft_outputs[(self.spread_fft_outputs_index - offset) & _HISTORY_MASK]
            np.maximum(earlier, spread, out=earlier)

        self.spread_fft_outputs_index = (self.spread_fft_outputs_index + 1) & _HISTORY_MASK

    def _do_peak_recognition(self) -> None:
        fft_minus_46 = self.fft_outputs[(self.fft_outputs_index - PEAK_DETECTION_LAG) & _HISTORY_MASK]
        fft_minus_49 = self.spread_fft_outputs[(self.spread_fft_outputs_index - 49) & _HISTORY_MASK]

        first, last = _FIRST_BIN, _LAST_BIN + 1
        candidates = self._candidates
        candidates[:] = fft_minus_46[first:last]
        mask = self._mask
        scratch = self._scratch_mask

        np.greater_equal(candidates, _MIN_PEAK_POWER, out=mask)
        np.greater_equal(candidates, fft_minus_49[first - 1:last - 1], out=scratch)
        mask &= scratch
        if not mask.any():
            return

        # Must dominate the spread neighbourhood in frequency
        neighbour_max = self._neighbour_max
        neighbour_max.fill(0.0)
        for offset in _NEIGHBOUR_BIN_OFFSETS:
            np.maximum(neighbour_max, fft_minus_49[first + offset:last + offset], out=neighbour_max)
        np.greater(candidates, neighbour_max, out=scratch)
        mask &= scratch
        if not mask.any():
            return

        # ... and in time, one bin lower
        for offset in _OTHER_SLOT_OFFSETS:
            other = self.spread_fft_outputs[(self.spread_fft_outputs_index + offset) & _HISTORY_MASK]
            np.maximum(neighbour_max, other[first - 1:last - 1], out=neighbour_max)
        np.greater(candidates, neighbour_max, out=scratch)
        mask &= scratch

        peak_bins = np.flatnonzero(mask) + first
        if len(peak_bins) == 0:
            return

        fft_pass_number = self.num_spread_ffts_done - PEAK_DETECTION_LAG
        magnitudes = _log_magnitude(fft_minus_46[peak_bins])
        before = _log_magnitude(fft_minus_46[peak_bins - 1])
        after = _log_magnitude(fft_minus_46[peak_bins + 1])

        for peak_bin, magnitude, magnitude_before, magnitude_after in zip(
            peak_bins.tolist(), magnitudes.tolist(), before.tolist(), after.tolist()
        ):
            variation_1 = magnitude * 2 - magnitude_before - magnitude_after
            assert variation_1 >= 0, "peak must not be lower than its neighbours"
            if variation_1 > 0:
                variation_2 = (magnitude_after - magnitude_before) * 32 / variation_1
            else:
                # Flat top: both neighbours equal the peak
                variation_2 = 0.0

            corrected_bin = peak_bin * 64 + int(variation_2)
            frequency_hz = corrected_bin * (self.sample_rate_hz / 2 / 1024 / 64)
            band = band_for_frequency(frequency_hz)
            if band is None:
                continue

            self.peaks_by_band.setdefault(band, []).append(
                FrequencyPeak(fft_pass_number, min(int(magnitude), 0xFFFF), corrected_bin)
            )
