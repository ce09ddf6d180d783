"""Exception types raised across the recording pipeline."""


class TrascriviError(Exception):
    """Base class for all Trascrivi errors."""


class DeviceUnavailable(TrascriviError):
    """No capture device could be opened."""


class DeviceError(TrascriviError):
    """The capture device failed after the stream had started."""


class TranscriptionError(TrascriviError):
    """A single dispatch failed (network, auth or malformed reply)."""


class AnalysisError(TrascriviError):
    """Structure analysis failed or returned unparsable content."""


class StorageError(TrascriviError):
    """Reading, writing or decoding a persisted record failed."""


class ExportError(TrascriviError):
    """Writing an export document failed."""


class NoActiveSession(TrascriviError):
    """Stop or query was called while nothing is recording."""


class SessionAlreadyActive(TrascriviError):
    """Start was called while another recording is still active."""


class ServiceError(TrascriviError):
    """The remote service call failed or replied with an unexpected shape."""


class MissingApiKey(ServiceError):
    """No API key is configured for the remote service."""


class TranscriptNotFound(StorageError):
    """No record exists for the requested transcript id."""
