"""Error taxonomy shared by every LogFlow component."""


class LogFlowError(Exception):
    """Base class for all LogFlow errors."""


class InvalidInput(LogFlowError):
    """User-entered date/time or form data is malformed or incomplete."""


class NetworkError(LogFlowError):
    """The backend could not be reached (no HTTP response)."""


class BackendError(LogFlowError):
    """The backend answered with a non-success HTTP status."""

    def __init__(self, status_code: int, body_excerpt: str = ""):
        self.status_code = status_code
        self.body_excerpt = body_excerpt
        super().__init__(f"API {status_code}: {body_excerpt}")


class MalformedResponse(LogFlowError):
    """The backend answered with JSON that cannot be normalized."""
