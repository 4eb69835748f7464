"""Exceptions raised by the VisionStruct server."""


class VisionStructError(Exception):
    """Base error for VisionStruct."""


class AnalysisError(VisionStructError):
    """The inference gateway could not produce an analysis."""


class ConfigurationError(AnalysisError):
    """A required credential or setting is missing."""


class BackendError(AnalysisError):
    """The inference backend failed or returned an exceptional status."""


class ValidationError(VisionStructError):
    """Invocation arguments are malformed or incomplete."""


class SessionNotFoundError(VisionStructError):
    """No open session exists for the given identifier."""

    def __init__(self, session_id: str | None):
        super().__init__(f"Could not find session {session_id!r}")
        self.session_id = session_id


class TransportError(VisionStructError):
    """Writing to a session's stream failed, usually because the client went away."""
