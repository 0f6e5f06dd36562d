"""Call session API endpoints."""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from platecall.core.dependencies import get_session_manager
from platecall.core.errors import PersistenceError, PlateCallError
from platecall.services.call_session.manager import CallSessionManager
from platecall.services.call_session.models import CallSessionView
from platecall.services.plates.resolver import normalize_plate

router = APIRouter()
logger = logging.getLogger(__name__)


class StartCallRequest(BaseModel):
    """Start call request model."""
    plate: Optional[str] = None
    via: Optional[str] = None
    caller_info: Optional[Dict[str, Any]] = None


class StatusUpdateRequest(BaseModel):
    """Status update request model."""
    status: str


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/api/call/start")
async def start_call(
    request: Request,
    body: StartCallRequest,
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """
    Create a ringing call session for a scanned plate.

    The returned call's channel is the canonical plate both sides join.
    """
    logger.info(
        f"[CALL START] Request received - plate: {body.plate!r}, via: {body.via}, "
        f"Client: {_client_host(request)}"
    )

    try:
        call = await session_manager.start_call(
            body.plate, via=body.via, caller_info=body.caller_info
        )
    except PlateCallError as e:
        logger.info(f"[CALL START] Rejected - plate: {body.plate!r}, {e.code}: {e.message}")
        raise
    except Exception as e:
        logger.error(
            f"[CALL START] Error starting call - plate: {body.plate!r}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        raise PersistenceError(f"Unhandled: {e}")

    logger.info(f"[CALL START] Call {call.id} ringing on channel {call.channel}")
    return {"ok": True, "call": CallSessionView.model_validate(call)}


@router.get("/api/calls/{call_id}")
async def get_call(
    call_id: str,
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """Get a call session."""
    call = await session_manager.get_call(call_id)
    return {"ok": True, "call": CallSessionView.model_validate(call)}


@router.post("/api/calls/{call_id}/status")
async def update_call_status(
    request: Request,
    call_id: str,
    body: StatusUpdateRequest,
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """
    Transition a call session.

    Writes that lose a race or target a closed call succeed with
    ``applied: false`` and the current row.
    """
    logger.info(
        f"[CALL STATUS] {call_id} -> {body.status} requested, Client: {_client_host(request)}"
    )

    try:
        result = await session_manager.transition(call_id, body.status)
    except PlateCallError:
        raise
    except Exception as e:
        logger.error(
            f"[CALL STATUS] Error updating call - id: {call_id}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        raise PersistenceError(f"Unhandled: {e}")

    return {"ok": True, "call": result.call, "applied": result.applied}


@router.get("/scan/{plate}")
async def scan_landing(plate: str):
    """Landing data for a scanned QR code; the call starts on user action."""
    return {
        "ok": True,
        "plate": normalize_plate(plate),
        "start": {"method": "POST", "url": "/api/call/start"},
    }
