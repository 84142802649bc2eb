import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from ai_reader.common.models import RequestKind, SettingsUpdateRequest
from ai_reader.common.utils import credential_fingerprint

logger = logging.getLogger("AIReaderGateway")

router = APIRouter()


@router.get("/admin/settings")
async def get_admin_settings(request: Request):
    """Returns the active settings with credentials masked."""
    return request.app.state.config_manager.get_settings().masked()


@router.post("/admin/settings")
async def update_admin_settings(req: SettingsUpdateRequest, request: Request):
    """Applies a partial settings update. Takes effect on the next generate request."""
    try:
        settings = request.app.state.config_manager.update_settings(req.model_dump())
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid settings: {e}")
    return settings.masked()


@router.get("/admin/routing-state")
async def get_routing_state(request: Request):
    """Shows, per credential, where each request kind resumes in its model stack."""
    fallback_router = request.app.state.fallback_router
    await fallback_router.holder.ensure_loaded()
    settings = request.app.state.config_manager.get_settings()
    credentials = fallback_router.credentials.list(settings)

    stacks = {kind.value: fallback_router.catalog.stack_for(kind, settings) for kind in RequestKind}
    rows = []
    for index, credential in enumerate(credentials):
        row = {"index": index, "key": f"...{credential[-4:]}", "fingerprint": credential_fingerprint(credential)}
        for kind in RequestKind:
            cursor = fallback_router.route_state.cursor_for(credential, kind, len(stacks[kind.value]))
            row[f"{kind.value}_cursor"] = cursor
            row[f"{kind.value}_next_model"] = stacks[kind.value][cursor] if stacks[kind.value] else None
        rows.append(row)

    return {
        "active_credential": fallback_router.credentials.active_index(len(credentials)),
        "credential_count": len(credentials),
        "stacks": stacks,
        "credentials": rows,
    }


@router.post("/admin/routing-state/reset")
async def reset_routing_state(request: Request):
    """Forgets every sticky cursor and the active credential pointer."""
    await request.app.state.fallback_router.holder.clear()
    logger.info("Routing state reset via admin API.")
    return {"status": "success", "message": "Routing state cleared."}
