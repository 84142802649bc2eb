from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ai_reader.common.models import RequestKind


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"
    CLIENT_ERROR = "client_error"
    MALFORMED_RESPONSE = "malformed_response"
    NETWORK_ERROR = "network_error"


@dataclass
class AttemptOutcome:
    kind: OutcomeKind
    message: str = ""
    status_code: Optional[int] = None
    result: Any = None

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    @classmethod
    def success(cls, result: Any, status_code: int = 200) -> "AttemptOutcome":
        return cls(OutcomeKind.SUCCESS, status_code=status_code, result=result)

    @classmethod
    def timeout(cls, message: str = "Request timed out") -> "AttemptOutcome":
        return cls(OutcomeKind.TIMEOUT, message=message)

    @classmethod
    def network_error(cls, message: str) -> "AttemptOutcome":
        return cls(OutcomeKind.NETWORK_ERROR, message=message)

    @classmethod
    def malformed(cls, message: str, status_code: Optional[int] = None) -> "AttemptOutcome":
        return cls(OutcomeKind.MALFORMED_RESPONSE, message=message, status_code=status_code)


def classify_status(status_code: int, error_message: Optional[str] = None) -> AttemptOutcome:
    """Maps a non-2xx HTTP status onto an outcome.

    429 is a rate limit, 503 and any other 5xx a server error, everything else a
    client error carrying the provider's message.
    """
    if status_code == 429:
        return AttemptOutcome(
            OutcomeKind.RATE_LIMITED,
            message=f"Status {status_code}: Rate Limit/Server Error",
            status_code=status_code,
        )
    if status_code >= 500:
        return AttemptOutcome(
            OutcomeKind.SERVER_ERROR,
            message=f"Status {status_code}: Rate Limit/Server Error",
            status_code=status_code,
        )
    return AttemptOutcome(
        OutcomeKind.CLIENT_ERROR,
        message=f"Status {status_code}: {error_message or 'Unknown error'}",
        status_code=status_code,
    )


def is_sticky(kind: RequestKind, outcome: AttemptOutcome) -> bool:
    """Whether a failed attempt should move the credential's persisted cursor past the model.

    Text timeouts are transient: the next independent request retries the same
    model. Every other failure is sticky. Image requests treat every failure,
    timeouts included, as sticky.
    """
    if outcome.ok:
        return False
    if RequestKind(kind) == RequestKind.IMAGE:
        return True
    return outcome.kind != OutcomeKind.TIMEOUT
