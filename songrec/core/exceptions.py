"""Error taxonomy for the recognition client.

Every failure surfaced by the package is a ``SongRecError``. The five
direct subclasses are the kinds callers branch on; the specialisations
below them let tests and the CLI tell apart the common causes.
"""


class SongRecError(Exception):
    """Base class for all errors raised by the package."""

    kind = "SongRec error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class AudioError(SongRecError):
    """Capture device could not be listed, opened or read."""

    kind = "Audio error"


class FingerprintingError(SongRecError):
    """Audio could not be decoded or turned into a signature."""

    kind = "Fingerprinting error"


class NetworkError(SongRecError):
    """The recognition service could not produce a match."""

    kind = "Network error"


class InvalidInputError(SongRecError):
    """A caller handed over malformed data."""

    kind = "Invalid input"


class ConfigurationError(SongRecError):
    """A persisted configuration could not be read or is invalid."""

    kind = "Configuration error"


class AudioFileNotFoundError(FingerprintingError):
    pass


class UnsupportedAudioError(FingerprintingError):
    pass


class AudioTooShortError(FingerprintingError):
    pass


class ServiceUnavailableError(NetworkError):
    """Every delivery attempt failed at the transport or HTTP level."""

    def __init__(self, message: str = "", attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class NoMatchError(NetworkError):
    """The service answered but recognised nothing."""


class InvalidResponseError(NetworkError):
    """The service answered with a body we cannot interpret."""


class SignatureFormatError(InvalidInputError):
    """A binary signature could not be encoded or decoded."""
