"""An open-source Shazam client library."""

__version__ = "0.5.0"

from .core.config import RecognitionConfig, get_settings
from .core.exceptions import (
    AudioError,
    ConfigurationError,
    FingerprintingError,
    InvalidInputError,
    NetworkError,
    SongRecError,
)
from .detection.audio_processor import (
    FrequencyBand,
    FrequencyPeak,
    Signature,
    SignatureGenerator,
    StreamHandler,
)
from .detection.external import ShazamService, TransportPolicy
from .detection.recognizer import RecognitionStream, SongRec
from .schemas.recognition import RecognitionResult
from .utils.output import OutputFormat, csv_header, format_result

__all__ = [
    "__version__",
    "AudioError",
    "ConfigurationError",
    "FingerprintingError",
    "FrequencyBand",
    "FrequencyPeak",
    "InvalidInputError",
    "NetworkError",
    "OutputFormat",
    "RecognitionConfig",
    "RecognitionResult",
    "RecognitionStream",
    "ShazamService",
    "Signature",
    "SignatureGenerator",
    "SongRec",
    "SongRecError",
    "StreamHandler",
    "TransportPolicy",
    "csv_header",
    "format_result",
    "get_settings",
]
