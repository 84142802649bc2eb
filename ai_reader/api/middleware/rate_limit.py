from slowapi import Limiter
from slowapi.util import get_remote_address
import os


def get_limiter():
    # In-process counters unless a shared store is configured (e.g. redis://host:6379/0).
    storage_uri = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")
    return Limiter(
        key_func=get_remote_address,
        storage_uri=storage_uri,
        strategy="fixed-window",
    )


limiter = get_limiter()

if os.getenv("MOCK_MODE", "false").lower() == "true":
    limiter.enabled = False
