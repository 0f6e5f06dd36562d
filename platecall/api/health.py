"""Health check endpoint."""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from platecall.core.dependencies import get_call_event_hub
from platecall.db.database import get_db
from platecall.services.notifications.hub import CallEventHub

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    hub: CallEventHub = Depends(get_call_event_hub),
):
    """Report whether the call session store is reachable."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"[HEALTH] Database check failed: {e}")
        return JSONResponse(
            status_code=503, content={"status": "unhealthy", "database": "unreachable"}
        )
    return {"status": "healthy", "database": "ok", "event_streams": hub.stream_count()}
