from .credential_store import CredentialStore
from .fallback_router import FallbackRouter, RoutePhase, RouteResult
from .google import GeminiTransport, RawResponse
from .model_catalog import ModelCatalog
from .outcomes import AttemptOutcome, OutcomeKind
from .route_state import RouteState

__all__ = [
    "AttemptOutcome",
    "CredentialStore",
    "FallbackRouter",
    "GeminiTransport",
    "ModelCatalog",
    "OutcomeKind",
    "RawResponse",
    "RoutePhase",
    "RouteResult",
    "RouteState",
]
