"""Background expiry of ringing calls nobody answered."""
import asyncio
import logging
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from platecall.services.call_session.manager import CallSessionManager
from platecall.services.notifications.hub import CallEventHub

logger = logging.getLogger(__name__)


async def sweep_once(session_factory: Callable[[], AsyncSession], hub: CallEventHub) -> int:
    """Run a single expiry pass in its own database session."""
    async with session_factory() as db:
        return await CallSessionManager(db, hub).expire_stale_calls()


async def run_ringing_sweeper(
    session_factory: Callable[[], AsyncSession],
    hub: CallEventHub,
    interval_seconds: float,
) -> None:
    """Periodically write ``timeout`` for stale ringing calls until cancelled."""
    logger.info(f"[SWEEPER] Started, interval {interval_seconds}s")
    while True:
        try:
            await sweep_once(session_factory, hub)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[SWEEPER] Expiry pass failed: {type(e).__name__}: {e}", exc_info=True)
        await asyncio.sleep(interval_seconds)
