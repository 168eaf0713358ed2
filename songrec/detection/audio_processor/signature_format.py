"""
Signature model and its binary wire format.

A signature is a set of spectral peaks grouped into four frequency bands.
The encoded form is a 48-byte little-endian header followed by one
tag-length-value record per band:

    header   magic1, crc32, size_minus_header, magic2, 3 x void,
             shifted sample rate id, 2 x void,
             number_samples_plus_divided_sample_rate, fixed_value
    marker   0x40000000, size_minus_header
    bands    (0x60030040 + band), length, peak bytes, zero padding to 4

Inside a band, each peak is stored as a one byte pass-number delta, a
u16 magnitude and a u16 corrected bin. A delta that does not fit in one
byte is replaced by an 0xff escape followed by the absolute pass number
as a u32.
"""

import base64
import math
import struct
import zlib
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List

from ...core.config.constants import DATA_URI_PREFIX, SAMPLE_RATE_IDS
from ...core.exceptions import SignatureFormatError

MAGIC_1 = 0xCAFE2580
MAGIC_2 = 0x94119C00
FIXED_VALUE = (15 << 19) + 0x40000
CONTENTS_MARKER = 0x40000000
BAND_MARKER_BASE = 0x60030040
HEADER_SIZE = 48

_HEADER = struct.Struct("<IIII3II2III")
_U32 = struct.Struct("<I")
_PEAK = struct.Struct("<BHH")
_ESCAPE = 0xFF

_SAMPLE_RATES_BY_ID = {value: key for key, value in SAMPLE_RATE_IDS.items()}


class FrequencyBand(IntEnum):
    """Frequency bands, named after their range in Hz."""

    _250_520 = 0
    _520_1450 = 1
    _1450_3500 = 2
    _3500_5500 = 3


@dataclass(frozen=True)
class FrequencyPeak:
    """One spectral peak."""

    fft_pass_number: int
    peak_magnitude: int
    corrected_peak_frequency_bin: int

    def frequency_hz(self, sample_rate_hz: int) -> float:
        return self.corrected_peak_frequency_bin * (sample_rate_hz / 2 / 1024 / 64)

    def seconds(self, sample_rate_hz: int) -> float:
        return self.fft_pass_number * 128 / sample_rate_hz

    def amplitude_pcm(self) -> float:
        """Approximate PCM amplitude the peak magnitude was derived from."""
        return math.sqrt(math.exp((self.peak_magnitude - 6144) / 1477.3) * (1 << 17) / 2) / 1024


@dataclass
class Signature:
    """A fingerprint of a window of audio."""

    sample_rate_hz: int
    number_samples: int
    peaks_by_band: Dict[FrequencyBand, List[FrequencyPeak]] = field(default_factory=dict)

    @property
    def peak_count(self) -> int:
        return sum(len(peaks) for peaks in self.peaks_by_band.values())

    @property
    def duration_seconds(self) -> float:
        return self.number_samples / self.sample_rate_hz

    def encode(self) -> bytes:
        return encode_signature(self)

    def to_request_uri(self) -> str:
        return DATA_URI_PREFIX + base64.b64encode(self.encode()).decode("ascii")

    @classmethod
    def decode(cls, data: bytes) -> "Signature":
        return decode_signature(data)

    @classmethod
    def from_uri(cls, uri: str) -> "Signature":
        """Decode a signature from the data URI produced by :meth:`to_request_uri`."""
        if not uri.startswith(DATA_URI_PREFIX):
            raise SignatureFormatError("Not a signature data URI")
        try:
            data = base64.b64decode(uri[len(DATA_URI_PREFIX):], validate=True)
        except ValueError as e:
            raise SignatureFormatError(f"Invalid base64 payload: {e}") from e
        return decode_signature(data)


def _sample_rate_offset(sample_rate_hz: int) -> int:
    # sample_rate * 0.24, kept in integer arithmetic so decoding is exact
    return sample_rate_hz * 24 // 100


def _encode_band_peaks(band: FrequencyBand, peaks: List[FrequencyPeak]) -> bytes:
    out = bytearray()
    last_pass_number = 0
    for peak in peaks:
        if not 0 <= peak.corrected_peak_frequency_bin <= 0xFFFF:
            raise SignatureFormatError(
                f"Frequency bin {peak.corrected_peak_frequency_bin} out of range in band {band.name}"
            )
        if not 0 <= peak.peak_magnitude <= 0xFFFF:
            raise SignatureFormatError(
                f"Peak magnitude {peak.peak_magnitude} out of range in band {band.name}"
            )
        if not 0 <= peak.fft_pass_number <= 0xFFFFFFFF:
            raise SignatureFormatError(f"FFT pass number {peak.fft_pass_number} out of range")
        if peak.fft_pass_number < last_pass_number:
            raise SignatureFormatError(f"Peaks of band {band.name} are not ordered by FFT pass")

        if peak.fft_pass_number - last_pass_number >= _ESCAPE:
            out.append(_ESCAPE)
            out += _U32.pack(peak.fft_pass_number)
            last_pass_number = peak.fft_pass_number

        out += _PEAK.pack(
            peak.fft_pass_number - last_pass_number,
            peak.peak_magnitude,
            peak.corrected_peak_frequency_bin,
        )
        last_pass_number = peak.fft_pass_number
    return bytes(out)


def encode_signature(signature: Signature) -> bytes:
    """Serialize a signature to its binary form.

    Args:
        signature: Signature to encode

    Returns:
        bytes: The encoded signature

    Raises:
        SignatureFormatError: If the sample rate is unsupported or a peak
            cannot be represented
    """
    if signature.sample_rate_hz not in SAMPLE_RATE_IDS:
        raise SignatureFormatError(f"Unsupported sample rate {signature.sample_rate_hz}")
    number_samples_field = signature.number_samples + _sample_rate_offset(signature.sample_rate_hz)
    if signature.number_samples < 0 or number_samples_field > 0xFFFFFFFF:
        raise SignatureFormatError(f"Sample count {signature.number_samples} out of range")

    contents = bytearray()
    for band in sorted(signature.peaks_by_band):
        if not isinstance(band, FrequencyBand):
            try:
                band = FrequencyBand(band)
            except ValueError as e:
                raise SignatureFormatError(f"Unknown frequency band {band!r}") from e
        peaks_buffer = _encode_band_peaks(band, signature.peaks_by_band[band])
        contents += _U32.pack(BAND_MARKER_BASE + band)
        contents += _U32.pack(len(peaks_buffer))
        contents += peaks_buffer
        contents += b"\x00" * (-len(peaks_buffer) % 4)

    size_minus_header = len(contents) + 8
    body = _U32.pack(CONTENTS_MARKER) + _U32.pack(size_minus_header) + bytes(contents)

    header_fields = [
        MAGIC_2,
        0, 0, 0,
        SAMPLE_RATE_IDS[signature.sample_rate_hz] << 27,
        0, 0,
        number_samples_field,
        FIXED_VALUE,
    ]
    # The checksum covers everything after the first two header words
    tail = struct.pack("<I", size_minus_header) + struct.pack("<I3II2III", *header_fields) + body
    checksum = zlib.crc32(tail) & 0xFFFFFFFF

    return _U32.pack(MAGIC_1) + _U32.pack(checksum) + tail


def _read_u32(data: bytes, offset: int, what: str) -> int:
    if offset + 4 > len(data):
        raise SignatureFormatError(f"Truncated signature while reading {what}")
    return _U32.unpack_from(data, offset)[0]


def _decode_band_peaks(band: FrequencyBand, payload: bytes) -> List[FrequencyPeak]:
    peaks = []
    offset = 0
    pass_number = 0
    while offset < len(payload):
        if payload[offset] == _ESCAPE:
            pass_number = _read_u32(payload, offset + 1, f"pass number of band {band.name}")
            offset += 5
            continue
        if offset + _PEAK.size > len(payload):
            raise SignatureFormatError(f"Truncated peak record in band {band.name}")
        delta, magnitude, corrected_bin = _PEAK.unpack_from(payload, offset)
        offset += _PEAK.size
        pass_number += delta
        peaks.append(FrequencyPeak(pass_number, magnitude, corrected_bin))
    return peaks


def decode_signature(data: bytes) -> Signature:
    """Parse a binary signature.

    Args:
        data: Encoded signature

    Returns:
        Signature: The decoded signature

    Raises:
        SignatureFormatError: If the data is truncated, corrupt or uses
            markers this decoder does not know
    """
    if len(data) < HEADER_SIZE + 8:
        raise SignatureFormatError("Signature shorter than its header")

    (
        magic1,
        checksum,
        size_minus_header,
        magic2,
        _void1a,
        _void1b,
        _void1c,
        shifted_sample_rate_id,
        _void2a,
        _void2b,
        number_samples_field,
        _fixed_value,
    ) = _HEADER.unpack_from(data, 0)

    if magic1 != MAGIC_1:
        raise SignatureFormatError(f"Bad magic number 0x{magic1:08x}")
    if size_minus_header != len(data) - HEADER_SIZE:
        raise SignatureFormatError("Size field does not match the data length")
    if zlib.crc32(data[8:]) & 0xFFFFFFFF != checksum:
        raise SignatureFormatError("CRC mismatch")
    if magic2 != MAGIC_2:
        raise SignatureFormatError(f"Unknown signature version 0x{magic2:08x}")

    sample_rate_hz = _SAMPLE_RATES_BY_ID.get(shifted_sample_rate_id >> 27)
    if sample_rate_hz is None:
        raise SignatureFormatError(f"Unknown sample rate id {shifted_sample_rate_id >> 27}")
    number_samples = number_samples_field - _sample_rate_offset(sample_rate_hz)
    if number_samples < 0:
        raise SignatureFormatError("Negative sample count")

    offset = HEADER_SIZE
    if _read_u32(data, offset, "contents marker") != CONTENTS_MARKER:
        raise SignatureFormatError("Missing contents marker")
    if _read_u32(data, offset + 4, "contents size") != size_minus_header:
        raise SignatureFormatError("Contents size does not match the header")
    offset += 8

    peaks_by_band: Dict[FrequencyBand, List[FrequencyPeak]] = {}
    while offset < len(data):
        marker = _read_u32(data, offset, "band marker")
        length = _read_u32(data, offset + 4, "band length")
        offset += 8
        try:
            band = FrequencyBand(marker - BAND_MARKER_BASE)
        except ValueError as e:
            raise SignatureFormatError(f"Unknown band marker 0x{marker:08x}") from e
        if band in peaks_by_band:
            raise SignatureFormatError(f"Band {band.name} appears twice")
        if offset + length > len(data):
            raise SignatureFormatError(f"Truncated band {band.name}")
        peaks_by_band[band] = _decode_band_peaks(band, data[offset:offset + length])
        offset += length + (-length % 4)

    return Signature(sample_rate_hz, number_samples, peaks_by_band)
