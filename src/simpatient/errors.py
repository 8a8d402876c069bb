"""Domain exceptions shared by the session core, collaborators and routes."""


class SimPatientError(Exception):
    """Base class for failures reported to API callers."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self.args[0])

    def to_dict(self) -> dict:
        return {"success": False, "error": self.code, "message": self.message}


class ConfigError(SimPatientError):
    """Raised at startup when required configuration is missing or invalid."""

    code = "config_error"


class ValidationError(SimPatientError):
    """Raised when a required input is missing or malformed."""

    status_code = 400
    code = "validation_error"


class PayloadTooLarge(ValidationError):
    """Raised when an uploaded audio file exceeds the configured limit."""

    status_code = 413
    code = "payload_too_large"


class NotFoundError(SimPatientError):
    status_code = 404
    code = "not_found"


class SessionNotFound(NotFoundError):
    """Session not found or expired"""

    code = "session_not_found"


class CaseNotFound(NotFoundError):
    """OSCE case not found"""

    code = "case_not_found"


class SessionStateError(SimPatientError):
    status_code = 400
    code = "invalid_session_state"


class SessionNotActive(SessionStateError):
    """Session not active. Call /start first."""

    code = "session_not_active"


class SessionAlreadyActive(SessionStateError):
    """Session already started"""

    code = "session_already_active"


class UpstreamError(SimPatientError):
    """An external service failed"""

    status_code = 502
    code = "upstream_error"


class CaseLookupError(UpstreamError):
    """Case database lookup failed"""

    code = "case_lookup_failed"


class TranscriptionError(UpstreamError):
    """Failed to transcribe audio"""

    code = "transcription_failed"


class CompletionError(UpstreamError):
    """Failed to get a chat completion"""

    code = "completion_failed"


class SynthesisError(UpstreamError):
    """Failed to generate speech"""

    code = "synthesis_failed"


class UpstreamTimeout(UpstreamError):
    """An external service did not respond in time"""

    status_code = 504
    code = "upstream_timeout"


__all__ = [
    "SimPatientError",
    "ConfigError",
    "ValidationError",
    "PayloadTooLarge",
    "NotFoundError",
    "SessionNotFound",
    "CaseNotFound",
    "SessionStateError",
    "SessionNotActive",
    "SessionAlreadyActive",
    "UpstreamError",
    "CaseLookupError",
    "TranscriptionError",
    "CompletionError",
    "SynthesisError",
    "UpstreamTimeout",
]
