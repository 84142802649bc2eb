import logging
import os
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ai_reader.common.models import ImagePayload, ImageResult, RequestKind, TextPayload
from ai_reader.config.base.settings import STATE_SETTINGS
from ai_reader.db.state_store import (
    InMemoryStateStore,
    JsonFileStateStore,
    RedisStateStore,
    RoutingStateStore,
)
from ai_reader.providers.fallback_router import FallbackRouter

logger = logging.getLogger("AIReaderGateway")


async def generate_text(
    router: FallbackRouter,
    prompt: str,
    system_instruction: str = "",
    expect_json: bool = False,
) -> str:
    """Single entry point for story, sentence and trainer text generation."""
    payload = TextPayload(prompt=prompt, system_instruction=system_instruction, expect_json=expect_json)
    return await router.request(RequestKind.TEXT, payload)


async def generate_image(router: FallbackRouter, prompt: str) -> ImageResult:
    return await router.request(RequestKind.IMAGE, ImagePayload(prompt=prompt))


async def build_state_store(backend: Optional[str] = None) -> RoutingStateStore:
    """Creates the routing state store selected by AI_READER_STATE_BACKEND.

    Falls back to the JSON file store if Redis is selected but unreachable.
    """
    backend = (backend or STATE_SETTINGS["backend"]).lower()

    if backend == "redis":
        redis_host = os.getenv("REDIS_HOST", "localhost")
        redis_port = int(os.getenv("REDIS_PORT", 6379))
        client = redis.Redis(host=redis_host, port=redis_port, db=0, decode_responses=True)
        try:
            await client.ping()
            logger.info(f"✅ Routing state stored in Redis: {redis_host}:{redis_port}")
            return RedisStateStore(client, key=STATE_SETTINGS["redis_key"])
        except (RedisError, OSError) as e:
            logger.error(
                f"❌ Could not connect to Redis at {redis_host}:{redis_port}: {e}. "
                f"Falling back to file storage."
            )
            await client.aclose()
            backend = "file"

    if backend == "memory":
        logger.warning("Routing state is in memory only. It will be lost on restart.")
        return InMemoryStateStore()

    logger.info(f"Routing state stored in {STATE_SETTINGS['file_path']}")
    return JsonFileStateStore(STATE_SETTINGS["file_path"])
