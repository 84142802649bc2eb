from typing import List, Optional


class RoutingError(Exception):
    """Base class for errors surfaced by the fallback router."""


class NoCredentialsConfigured(RoutingError):
    def __init__(self, message: str = "API Key is missing. Please add it in Settings."):
        super().__init__(message)


class AllAttemptsExhausted(RoutingError):
    """Raised when every credential/model combination failed for one request.

    Wraps the message of the last underlying failure. The individual attempts
    are kept on ``attempts`` for logging and the admin API.
    """

    def __init__(self, kind: str, last_error: Optional[str], attempts: Optional[List] = None):
        self.kind = kind
        self.last_error = last_error
        self.attempts = attempts or []
        label = "Text" if kind == "text" else "Image"
        super().__init__(f"AI {label} Generation failed. Last error: {last_error}")


class TransportError(Exception):
    pass


class TransportTimeout(TransportError):
    pass


class TransportNetworkError(TransportError):
    pass


class MalformedResponseError(Exception):
    pass
