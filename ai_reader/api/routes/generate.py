import logging

from fastapi import APIRouter, HTTPException, Request

from ai_reader.api.middleware.rate_limit import limiter
from ai_reader.common.errors import AllAttemptsExhausted, NoCredentialsConfigured
from ai_reader.common.models import ImagePayload, ImageResult, RequestKind, TextPayload, TextResult
from ai_reader.config.base.settings import RATE_LIMIT_SETTINGS

logger = logging.getLogger("AIReaderGateway")

router = APIRouter()


async def _route(request: Request, kind: RequestKind, payload):
    fallback_router = request.app.state.fallback_router
    try:
        return await fallback_router.route(kind, payload)
    except NoCredentialsConfigured as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AllAttemptsExhausted as e:
        raise HTTPException(
            status_code=502,
            detail={
                "message": str(e),
                "last_error": e.last_error,
                "attempts": [a.as_dict() for a in e.attempts],
            },
        )


@router.post("/v1/generate/text", response_model=TextResult, summary="Generate text through the fallback chain")
@limiter.limit(RATE_LIMIT_SETTINGS["generate_text"])
async def handle_generate_text(request: Request, body: TextPayload):
    logger.info(f"Text generation request received (json={body.expect_json}).")
    result = await _route(request, RequestKind.TEXT, body)
    return TextResult(text=result.value, model=result.model)


@router.post("/v1/generate/image", response_model=ImageResult, summary="Generate an image through the fallback chain")
@limiter.limit(RATE_LIMIT_SETTINGS["generate_image"])
async def handle_generate_image(request: Request, body: ImagePayload):
    logger.info("Image generation request received.")
    result = await _route(request, RequestKind.IMAGE, body)
    return result.value
