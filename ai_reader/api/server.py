import logging
import os
from contextlib import asynccontextmanager

import httpx
from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ai_reader.common import logging_config, tracing
from ai_reader.config.config_manager import ConfigManager
from ai_reader.providers.fallback_router import FallbackRouter
from ai_reader.providers.google import GeminiTransport
from ai_reader.api.services import build_state_store
from ai_reader.api.middleware.rate_limit import limiter
from ai_reader.api.routes import admin, generate

logger = logging.getLogger("AIReaderGateway")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Builds settings, the routing state store, the shared HTTP client and the router.
    Closes the HTTP client and the state store connection on shutdown.
    """
    logging_config.setup_json_logging()
    logger.info("Initializing AI Reader Gateway...")
    tracing.setup_tracing()

    app.state.config_manager = ConfigManager(settings_file=os.getenv("AI_READER_SETTINGS_FILE"))

    logger.info("Creating a shared httpx.AsyncClient...")
    app.state.http_client = httpx.AsyncClient()

    store = await build_state_store()
    app.state.fallback_router = FallbackRouter.create(
        settings_provider=app.state.config_manager.get_settings,
        store=store,
        transport=GeminiTransport(app.state.http_client),
    )
    await app.state.fallback_router.holder.ensure_loaded()

    credentials = app.state.fallback_router.credentials.list()
    if credentials:
        logger.info(f"-> [GOOGLE] {len(credentials)} credential(s) configured.")
    else:
        logger.warning("No API credentials configured. Generate requests will fail until keys are added.")

    logger.info("Application initialized successfully.")
    yield
    logger.info("Shutting down...")

    redis_client = getattr(store, "redis_client", None)
    if redis_client is not None:
        await redis_client.aclose()
    logger.info("Closing the shared httpx.AsyncClient...")
    await app.state.http_client.aclose()
    logger.info("Application stopped.")


app = FastAPI(title="AI Reader Gateway", version="1.0", lifespan=lifespan)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

FastAPIInstrumentor.instrument_app(app)

app.include_router(generate.router)
app.include_router(admin.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
