import logging
from typing import Dict

from ai_reader.common.models import RequestKind
from ai_reader.common.utils import credential_fingerprint
from ai_reader.db.state_store import RoutingStateHolder

logger = logging.getLogger(__name__)


class RouteState:
    """Per-credential, per-kind sticky cursors into the model stack.

    A cursor marks the model a credential resumes from on its next request.
    Text and image cursors are independent. Cursors are stored under the
    credential fingerprint so they survive edits to the credential list.
    """

    def __init__(self, holder: RoutingStateHolder):
        self._holder = holder

    def cursor_for(self, credential: str, kind: RequestKind, stack_length: int) -> int:
        """Returns the stored cursor, or 0 when unset or out of range for the current stack.

        A cursor equal to the stack length means the credential was exhausted last
        time; it wraps to 0 instead of staying stuck at the end.
        """
        kind_cursors = self._holder.state.cursors.get(RequestKind(kind).value, {})
        cursor = kind_cursors.get(credential_fingerprint(credential), 0)
        if cursor < 0 or cursor >= stack_length:
            return 0
        return cursor

    async def advance(self, credential: str, kind: RequestKind, new_index: int):
        fingerprint = credential_fingerprint(credential)
        kind_value = RequestKind(kind).value

        def _apply(state):
            state.cursors.setdefault(kind_value, {})[fingerprint] = new_index

        await self._holder.mutate(_apply)
        logger.debug(f"Cursor for {fingerprint} ({kind_value}) -> {new_index}")

    async def reset(self, credential: str, kind: RequestKind):
        await self.advance(credential, kind, 0)

    def snapshot(self) -> Dict[str, Dict[str, int]]:
        return {kind: dict(cursors) for kind, cursors in self._holder.state.cursors.items()}
