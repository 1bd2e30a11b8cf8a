"""Error taxonomy shared by the job pipeline and the HTTP layer."""


class MediaToolsError(Exception):
    """Base class for failures surfaced to the caller as a single text response."""

    kind = "MediaToolsError"
    status_code = 500


class ValidationError(MediaToolsError):
    """Raised when request input is missing or malformed."""

    kind = "ValidationError"
    status_code = 400


class MissingInput(ValidationError):
    """Raised when a required upload or form field is absent."""

    kind = "MissingInput"

    def __init__(self, field: str, message: str | None = None) -> None:
        super().__init__(message or f"Missing required field: {field}")
        self.field = field


class PayloadTooLarge(MediaToolsError):
    """Raised when an upload exceeds the configured size limit."""

    kind = "PayloadTooLarge"
    status_code = 413


class ResourceError(MediaToolsError):
    """Raised when a workspace cannot be allocated or written."""

    kind = "ResourceError"
    status_code = 500


class TransformFailed(MediaToolsError):
    """Raised when the transformation tool exits non-zero or throws."""

    kind = "TransformFailed"
    status_code = 500

    def __init__(self, message: str, diagnostics: str = "") -> None:
        super().__init__(f"{message}: {diagnostics}" if diagnostics else message)
        self.diagnostics = diagnostics


class TransformTimeout(TransformFailed):
    """Raised when the transformation exceeds its wall-clock budget."""

    kind = "TransformTimeout"
    status_code = 504


class JobCancelled(MediaToolsError):
    """Raised when the client goes away while the transformation runs."""

    kind = "JobCancelled"
    status_code = 499


class ServiceBusy(MediaToolsError):
    """Raised when the transformation concurrency ceiling stays saturated."""

    kind = "ServiceBusy"
    status_code = 503
