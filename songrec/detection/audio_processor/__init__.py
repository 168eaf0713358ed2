"""
Audio processing: signature generation, wire format, streaming and I/O.
"""

from .audio_loader import load_audio_file, select_excerpt
from .recorder import AudioRecorder, CaptureSession
from .signature_format import (
    FrequencyBand,
    FrequencyPeak,
    Signature,
    decode_signature,
    encode_signature,
)
from .signature_generator import SignatureGenerator
from .stream_handler import StreamHandler

__all__ = [
    "AudioRecorder",
    "CaptureSession",
    "FrequencyBand",
    "FrequencyPeak",
    "Signature",
    "SignatureGenerator",
    "StreamHandler",
    "decode_signature",
    "encode_signature",
    "load_audio_file",
    "select_excerpt",
]
