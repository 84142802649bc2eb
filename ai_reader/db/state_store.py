import asyncio
import json
import logging
import os
import tempfile
from typing import Optional

import redis.asyncio as redis
from pydantic import ValidationError

from ai_reader.common.models import RoutingState

logger = logging.getLogger("AIReaderGateway")


class RoutingStateStore:
    """Persistence for RoutingState. Subclasses implement load() and save()."""

    async def load(self) -> RoutingState:
        raise NotImplementedError

    async def save(self, state: RoutingState):
        raise NotImplementedError


class InMemoryStateStore(RoutingStateStore):
    """Process-lifetime store. Used in tests and when persistence is disabled."""

    def __init__(self, initial: Optional[RoutingState] = None):
        self._state = (initial or RoutingState()).model_copy(deep=True)

    async def load(self) -> RoutingState:
        return self._state.model_copy(deep=True)

    async def save(self, state: RoutingState):
        self._state = state.model_copy(deep=True)


class JsonFileStateStore(RoutingStateStore):
    """
    Stores the routing state as one JSON document on disk.
    Writes go through a temp file and os.replace so a crash never leaves a partial file.
    """

    def __init__(self, path: str):
        self.path = path

    async def load(self) -> RoutingState:
        return await asyncio.to_thread(self._read)

    async def save(self, state: RoutingState):
        await asyncio.to_thread(self._write, state.model_dump_json())

    def _read(self) -> RoutingState:
        if not os.path.exists(self.path):
            return RoutingState()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return RoutingState(**json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning(f"Routing state file {self.path} unreadable ({e}). Starting fresh.")
            return RoutingState()

    def _write(self, payload: str):
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".routing_state.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


class RedisStateStore(RoutingStateStore):
    """Keeps the routing state in a single Redis key, shared by every worker."""

    def __init__(self, redis_client: redis.Redis, key: str = "ai_reader:routing_state"):
        self.redis_client = redis_client
        self.key = key

    async def load(self) -> RoutingState:
        raw = await self.redis_client.get(self.key)
        if not raw:
            return RoutingState()
        try:
            return RoutingState.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Routing state in Redis key '{self.key}' is invalid ({e}). Starting fresh.")
            return RoutingState()

    async def save(self, state: RoutingState):
        await self.redis_client.set(self.key, state.model_dump_json())


class RoutingStateHolder:
    """
    The in-process copy of the routing state shared by CredentialStore and RouteState.

    Every mutation is applied under a lock and written through to the store at once.
    Concurrent requests read the same copy, so the last write wins.
    """

    def __init__(self, store: RoutingStateStore):
        self.store = store
        self._state = RoutingState()
        self._loaded = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> RoutingState:
        return self._state

    async def ensure_loaded(self):
        if self._loaded:
            return
        async with self._lock:
            if not self._loaded:
                self._state = await self.store.load()
                self._loaded = True
                logger.info(
                    f"Routing state loaded (active credential {self._state.active_credential}, "
                    f"{sum(len(c) for c in self._state.cursors.values())} cursors)."
                )

    async def mutate(self, mutator):
        async with self._lock:
            mutator(self._state)
            await self.store.save(self._state)

    async def clear(self):
        async with self._lock:
            self._state = RoutingState()
            self._loaded = True
            await self.store.save(self._state)
