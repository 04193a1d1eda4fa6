"""Error taxonomy shared by the proxy and the client pipeline.

Every error carries a short ``title`` and a human-readable ``user_message``
so callers can surface failures without leaking tracebacks.
"""


class TryOnError(Exception):
    """Base class for all try-on pipeline failures."""

    title = "Error"
    kind = "error"

    def __init__(self, message: str, *, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def user_message(self) -> str:
        return self.message


class ConfigurationError(Exception):
    """Raised when a required setting (e.g. the upstream API key) is missing."""


class InvalidInput(TryOnError):
    """Missing or unusable input image; raised before any network call."""

    title = "Invalid Image"
    kind = "invalid_input"


class EncodingFailure(TryOnError):
    """The image could not be compressed under the byte budget."""

    title = "Image Too Large"
    kind = "encoding_failure"

    def __init__(self, message: str, *, role: str | None = None, details: str | None = None):
        super().__init__(message, details=details)
        self.role = role

    @property
    def user_message(self) -> str:
        if self.role == "subject":
            return "Your photo is too large to upload. Please choose a smaller image."
        if self.role == "garment":
            return "The clothing photo is too large to upload. Please choose a smaller image."
        return "The image is too large to upload. Please choose a smaller image."


class UpstreamError(TryOnError):
    """Base class for failures talking to the generation service."""

    title = "Generation Error"
    kind = "upstream_error"


class UpstreamUnavailable(UpstreamError):
    """The service could not be reached or the request failed."""

    title = "Network Error"
    kind = "upstream_unavailable"

    @property
    def user_message(self) -> str:
        return f"Could not communicate with the server: {self.message}"


class UpstreamServerError(UpstreamUnavailable):
    """The service answered with a non-2xx status."""

    title = "Server Error"

    def __init__(self, status_code: int, message: str, *, details: str | None = None):
        super().__init__(message, details=details)
        self.status_code = status_code

    def __str__(self) -> str:
        return f"Server error ({self.status_code}): {self.message}"

    @property
    def user_message(self) -> str:
        return f"The server reported an error ({self.status_code}): {self.message}"


class UpstreamTimeout(UpstreamError):
    """The service did not answer within the configured timeout."""

    title = "Request Timed Out"
    kind = "upstream_timeout"

    @property
    def user_message(self) -> str:
        return (
            "Generating your try-on took too long. "
            "Please try again, or use smaller images."
        )


class UpstreamDecodeFailure(UpstreamError):
    """A successful response carried no extractable image data."""

    title = "Processing Error"
    kind = "upstream_decode_failure"

    @property
    def user_message(self) -> str:
        return "The server returned an invalid response. Please try again."


class QuotaExceeded(TryOnError):
    """No entitlement and no free uses left today."""

    title = "Daily Limit Reached"
    kind = "quota_exceeded"


class FreeRetryExhausted(TryOnError):
    """The free retry for a result has already been used."""

    title = "No Free Retries Left"
    kind = "free_retry_exhausted"


ERRORS_BY_KIND: dict[str, type[TryOnError]] = {
    InvalidInput.kind: InvalidInput,
    UpstreamTimeout.kind: UpstreamTimeout,
    UpstreamUnavailable.kind: UpstreamUnavailable,
    UpstreamDecodeFailure.kind: UpstreamDecodeFailure,
}
