import logging
from typing import Callable, List, Optional

from ai_reader.common.models import ReaderSettings
from ai_reader.db.state_store import RoutingStateHolder

logger = logging.getLogger("AIReaderGateway")


def normalize_credentials(settings: ReaderSettings) -> List[str]:
    """Trimmed, non-empty, de-duplicated credentials in declared order.

    Falls back to the legacy single key when the list is empty. Never raises;
    an empty result means nothing is configured.
    """
    seen = set()
    credentials = []
    for raw in settings.api_keys:
        key = (raw or "").strip()
        if not key or key in seen:
            continue
        seen.add(key)
        credentials.append(key)

    if not credentials:
        legacy = (settings.text_api_key or "").strip()
        if legacy:
            credentials.append(legacy)
    return credentials


class CredentialStore:
    """Exposes the ordered API credentials and the persisted active-credential pointer.

    The credential list is re-read from settings on every call, so indices are
    only meaningful against the list returned by the same request.
    """

    def __init__(self, settings_provider: Callable[[], ReaderSettings], holder: RoutingStateHolder):
        """Initializes the CredentialStore.

        Args:
            settings_provider: Callable returning the current ReaderSettings.
            holder: Shared routing state, owner of the active pointer.
        """
        self._settings_provider = settings_provider
        self._holder = holder

    def list(self, settings: Optional[ReaderSettings] = None) -> List[str]:
        """Credentials of `settings`, or of the current settings when omitted."""
        return normalize_credentials(settings or self._settings_provider())

    def active_index(self, count: Optional[int] = None) -> int:
        """The persisted pointer modulo `count` (the length of the caller's credential list)."""
        if count is None:
            count = len(self.list())
        if count <= 0:
            return 0
        return self._holder.state.active_credential % count

    async def set_active(self, index: int):
        def _apply(state):
            state.active_credential = index

        await self._holder.mutate(_apply)
        logger.debug(f"Active credential pointer set to {index}.")
