"""
Fallback router.

Turns one logical generate request into an ordered chain of attempts across
credentials x models:

  1. Start at the persisted active credential (wrapping over the list).
  2. For each credential, start at its sticky cursor and walk the model stack
     forward (no wrap inside one call).
  3. Success -> remember the credential, leave the cursor on the working model.
  4. Failure -> sticky failures move the cursor past the model for future calls,
     transient ones (text timeouts) only skip it for this call.
  5. A credential with no models left rotates the pointer to the next
     credential and gives that credential a fresh start.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Union

from opentelemetry import trace

from ai_reader.common.errors import (
    AllAttemptsExhausted,
    MalformedResponseError,
    NoCredentialsConfigured,
    TransportNetworkError,
    TransportTimeout,
)
from ai_reader.common.models import ImagePayload, ImageResult, ReaderSettings, RequestKind, TextPayload
from ai_reader.common.utils import key_identifier
from ai_reader.db.state_store import RoutingStateHolder, RoutingStateStore
from ai_reader.providers.credential_store import CredentialStore
from ai_reader.providers.google import GeminiTransport, build_request, parse_response
from ai_reader.providers.model_catalog import ModelCatalog
from ai_reader.providers.outcomes import AttemptOutcome, OutcomeKind, classify_status, is_sticky
from ai_reader.providers.route_state import RouteState

logger = logging.getLogger("AIReaderGateway")
tracer = trace.get_tracer(__name__)


class RoutePhase(str, Enum):
    TRYING_CREDENTIAL = "trying_credential"
    TRYING_MODEL = "trying_model"
    SUCCESS = "success"
    CREDENTIAL_EXHAUSTED = "credential_exhausted"
    ALL_EXHAUSTED = "all_exhausted"


@dataclass(frozen=True)
class StepDecision:
    phase: RoutePhase
    # New persisted cursor for the credential, None to leave it untouched.
    cursor_update: Optional[int] = None


def decide_step(
    kind: RequestKind,
    outcome: AttemptOutcome,
    model_index: int,
    stack_length: int,
    fallback_enabled: bool,
) -> StepDecision:
    """Pure transition out of TRYING_MODEL after one attempt."""
    if outcome.ok:
        return StepDecision(RoutePhase.SUCCESS)

    cursor = model_index + 1 if is_sticky(kind, outcome) else None
    if not fallback_enabled or model_index + 1 >= stack_length:
        return StepDecision(RoutePhase.CREDENTIAL_EXHAUSTED, cursor)
    return StepDecision(RoutePhase.TRYING_MODEL, cursor)


def should_rotate(fallback_enabled: bool, credential_count: int) -> bool:
    return fallback_enabled and credential_count > 1


@dataclass
class AttemptRecord:
    credential_index: int
    model: str
    outcome: AttemptOutcome

    def as_dict(self) -> dict:
        return {
            "credential_index": self.credential_index,
            "model": self.model,
            "outcome": self.outcome.kind.value,
            "status_code": self.outcome.status_code,
            "message": self.outcome.message,
        }


@dataclass
class RouteResult:
    value: Union[str, ImageResult]
    model: str
    credential_index: int
    attempts: List[AttemptRecord] = field(default_factory=list)


class FallbackRouter:
    """Routes generate requests through the credential x model fallback chain.

    All routing memory lives in the RoutingStateHolder passed in; the router
    keeps no loop state between calls, so concurrent requests are independent
    apart from the shared persisted pointer and cursors.
    """

    def __init__(
        self,
        holder: RoutingStateHolder,
        credentials: CredentialStore,
        catalog: ModelCatalog,
        route_state: RouteState,
        transport: GeminiTransport,
        settings_provider: Callable[[], ReaderSettings],
    ):
        self.holder = holder
        self.credentials = credentials
        self.catalog = catalog
        self.route_state = route_state
        self.transport = transport
        self._settings_provider = settings_provider

    @classmethod
    def create(
        cls,
        settings_provider: Callable[[], ReaderSettings],
        store: RoutingStateStore,
        transport: Optional[GeminiTransport] = None,
        catalog: Optional[ModelCatalog] = None,
    ) -> "FallbackRouter":
        holder = RoutingStateHolder(store)
        return cls(
            holder=holder,
            credentials=CredentialStore(settings_provider, holder),
            catalog=catalog or ModelCatalog(),
            route_state=RouteState(holder),
            transport=transport or GeminiTransport(),
            settings_provider=settings_provider,
        )

    async def request(
        self,
        kind: RequestKind,
        payload: Any,
        settings: Optional[ReaderSettings] = None,
    ) -> Union[str, ImageResult]:
        """Returns the generated text (text kind) or ImageResult (image kind).

        Raises:
            NoCredentialsConfigured: no credential is configured; nothing was attempted.
            AllAttemptsExhausted: every credential/model combination failed.
        """
        result = await self.route(kind, payload, settings)
        return result.value

    async def route(
        self,
        kind: RequestKind,
        payload: Any,
        settings: Optional[ReaderSettings] = None,
    ) -> RouteResult:
        """Same as request(), also reporting the winning model and every attempt made."""
        kind = RequestKind(kind)
        settings = settings or self._settings_provider()
        payload = self._coerce_payload(kind, payload)

        credentials = self.credentials.list(settings)
        if not credentials:
            raise NoCredentialsConfigured()

        await self.holder.ensure_loaded()

        count = len(credentials)
        start_index = self.credentials.active_index(count)
        attempts: List[AttemptRecord] = []
        last_error: Optional[str] = None

        for ki in range(count):
            # TRYING_CREDENTIAL
            credential_index = (start_index + ki) % count
            credential = credentials[credential_index]
            # Settings may have changed since the last call; re-resolve and re-clamp.
            stack = self.catalog.stack_for(kind, settings)
            model_index = self.route_state.cursor_for(credential, kind, len(stack))
            if not stack:
                last_error = f"No {kind.value} models configured"

            phase = RoutePhase.TRYING_MODEL if stack else RoutePhase.CREDENTIAL_EXHAUSTED
            while phase == RoutePhase.TRYING_MODEL:
                model = stack[model_index]
                outcome = await self._attempt(kind, credential_index, credential, model, payload, settings)
                attempts.append(AttemptRecord(credential_index, model, outcome))

                decision = decide_step(kind, outcome, model_index, len(stack), settings.use_fallback)
                if decision.phase == RoutePhase.SUCCESS:
                    await self.credentials.set_active(credential_index)
                    if isinstance(outcome.result, ImageResult):
                        outcome.result.model = model
                    return RouteResult(outcome.result, model, credential_index, attempts)

                last_error = outcome.message
                if decision.cursor_update is not None:
                    await self.route_state.advance(credential, kind, decision.cursor_update)
                phase = decision.phase
                model_index += 1

            # CREDENTIAL_EXHAUSTED
            if not settings.use_fallback:
                break
            if should_rotate(settings.use_fallback, count):
                next_index = (credential_index + 1) % count
                await self.credentials.set_active(next_index)
                await self.route_state.reset(credentials[next_index], kind)
                logger.info(
                    f"[{kind.value.upper()}] Credential #{credential_index} exhausted. "
                    f"Rotating to credential #{next_index}."
                )

        # ALL_EXHAUSTED
        error = AllAttemptsExhausted(kind.value, last_error, attempts)
        logger.warning(f"{error} ({len(attempts)} attempts)")
        raise error

    async def _attempt(
        self,
        kind: RequestKind,
        credential_index: int,
        credential: str,
        model: str,
        payload: Union[TextPayload, ImagePayload],
        settings: ReaderSettings,
    ) -> AttemptOutcome:
        """Issues one transport call and classifies it. Never raises for provider failures."""
        endpoint, body = build_request(kind, model, payload, settings)
        self._log_request(kind, model, payload, settings)

        with tracer.start_as_current_span("ai_reader.attempt") as span:
            span.set_attribute("ai_reader.kind", kind.value)
            span.set_attribute("ai_reader.model", model)
            span.set_attribute("ai_reader.credential_index", credential_index)
            try:
                raw = await self.transport.call(
                    endpoint, credential, model, body, float(settings.request_timeout_secs)
                )
            except TransportTimeout as e:
                outcome = AttemptOutcome.timeout(str(e))
            except TransportNetworkError as e:
                outcome = AttemptOutcome.network_error(str(e))
            else:
                if raw.ok:
                    try:
                        outcome = AttemptOutcome.success(parse_response(kind, raw.body), raw.status_code)
                    except MalformedResponseError as e:
                        outcome = AttemptOutcome.malformed(str(e), raw.status_code)
                else:
                    outcome = classify_status(raw.status_code, raw.error_message)
            span.set_attribute("ai_reader.outcome", outcome.kind.value)
            if outcome.status_code is not None:
                span.set_attribute("http.status_code", outcome.status_code)

        self._log_outcome(kind, credential, model, outcome, settings)
        return outcome

    @staticmethod
    def _coerce_payload(kind: RequestKind, payload: Any) -> Union[TextPayload, ImagePayload]:
        model_cls = TextPayload if kind == RequestKind.TEXT else ImagePayload
        if isinstance(payload, model_cls):
            return payload
        if isinstance(payload, str):
            return model_cls(prompt=payload)
        if isinstance(payload, (TextPayload, ImagePayload)):
            return model_cls(prompt=payload.prompt)
        return model_cls(**payload)

    def _log_request(self, kind, model, payload, settings):
        if not settings.debug_mode:
            return
        if kind == RequestKind.TEXT:
            logger.info(
                f"AI REQUEST: {model} | System Instruction: {payload.system_instruction or '(None)'} "
                f"| User Prompt: {payload.prompt}"
            )
        else:
            logger.info(f"IMAGE REQUEST: {model} | Prompt: {payload.prompt}")

    def _log_outcome(self, kind, credential, model, outcome: AttemptOutcome, settings):
        level = logging.INFO if settings.debug_mode else logging.DEBUG
        if not logger.isEnabledFor(level):
            return
        attempt = {
            "kind": kind.value,
            "model": model,
            "key": key_identifier(credential),
            "outcome": outcome.kind.value,
            "status_code": outcome.status_code,
        }
        if outcome.ok:
            if kind == RequestKind.TEXT and settings.debug_mode:
                logger.log(level, f"AI RESPONSE: {model} | Full Output: {outcome.result}", extra={"attempt": attempt})
            else:
                logger.log(level, f"AI RESPONSE: {model} OK", extra={"attempt": attempt})
        elif outcome.kind == OutcomeKind.TIMEOUT and kind == RequestKind.TEXT:
            logger.log(level, f"TIMEOUT: {model}, trying next model", extra={"attempt": attempt})
        else:
            logger.log(level, f"ERROR: {model}: {outcome.message}", extra={"attempt": attempt})
