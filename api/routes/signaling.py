from fastapi import APIRouter, Depends, Query, Request, Response
from typing import Optional
import json
import logging

from rendezvous.config import settings
from rendezvous.core.dispatcher import ActionDispatcher
from rendezvous.core.exceptions import RendezvousError, InvalidRequestError, InternalServerError
from rendezvous.core.logging import get_logger, log_exception
from rendezvous.deps import get_dispatcher

logger = logging.getLogger(__name__)
error_logger = get_logger(__name__)

router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": settings.CORS_ALLOW_ORIGIN,
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


async def _guarded(awaitable, context: dict) -> dict:
    """Let domain errors through; anything else becomes an opaque 500."""
    try:
        return await awaitable
    except RendezvousError:
        raise
    except Exception as e:
        log_exception(error_logger, e, context)
        raise InternalServerError() from e


async def _read_body(request: Request) -> dict:
    # Clients send either application/json or a JSON string as text/plain
    raw = await request.body()
    if not raw:
        raise InvalidRequestError("Request body is required", reason="empty_body")

    try:
        data = json.loads(raw)
        if isinstance(data, str):
            data = json.loads(data)
    except (ValueError, UnicodeDecodeError):
        raise InvalidRequestError("Request body must be valid JSON", reason="malformed_json")

    if not isinstance(data, dict):
        raise InvalidRequestError("Request body must be a JSON object", reason="malformed_json")
    return data


@router.options("/signaling")
async def signaling_preflight() -> Response:
    """CORS preflight"""
    return Response(status_code=200, headers=CORS_HEADERS)


@router.get("/signaling")
async def signaling_status(
    user_id: Optional[str] = Query(None, alias="userId"),
    verbose: bool = Query(False),
    dispatcher: ActionDispatcher = Depends(get_dispatcher),
) -> dict:
    """Health snapshot, or a poll when userId is given"""
    if user_id:
        logger.debug(f"Poll via GET for user {user_id}")
        return await _guarded(dispatcher.poll(user_id), {"userId": user_id, "action": "poll"})

    return await _guarded(
        dispatcher.snapshot(verbose=verbose and settings.DEBUG),
        {"action": "health"},
    )


@router.post("/signaling")
async def signaling_action(
    request: Request,
    dispatcher: ActionDispatcher = Depends(get_dispatcher),
) -> dict:
    """Run one of: join, poll, send-signal, p2p-connected, disconnect"""
    body = await _read_body(request)

    result = await _guarded(
        dispatcher.dispatch(body),
        {"userId": body.get("userId"), "action": body.get("action")},
    )

    logger.debug(f"{body.get('action')} for {body.get('userId')} -> {result.get('status')}")
    return result
