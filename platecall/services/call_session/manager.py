"""Call session manager."""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from platecall.core.config import settings
from platecall.core.errors import CallNotFoundError
from platecall.db.models import CallSession, CallStatus
from platecall.services.call_session.models import TransitionResult
from platecall.services.notifications.hub import CallEventHub
from platecall.services.persistence.calls import CallSessionStore
from platecall.services.persistence.vehicles import VehiclePersistenceService
from platecall.services.plates.resolver import PlateResolver

logger = logging.getLogger(__name__)


class CallSessionManager:
    """Resolves plates into ringing call sessions and applies status transitions."""

    def __init__(
        self,
        db: AsyncSession,
        hub: Optional[CallEventHub] = None,
        staleness: Optional[timedelta] = None,
        candidate_limit: Optional[int] = None,
    ):
        self.db = db
        self.store = CallSessionStore(db, hub)
        self.resolver = PlateResolver(
            VehiclePersistenceService(db),
            candidate_limit=candidate_limit or settings.plate_candidate_limit,
        )
        self.staleness = staleness or timedelta(seconds=settings.ringing_staleness_seconds)

    async def start_call(
        self,
        raw_plate: Optional[str],
        via: Optional[str] = None,
        caller_info: Optional[Dict[str, Any]] = None,
    ) -> CallSession:
        """
        Create a ringing call session for the vehicle behind ``raw_plate``.

        Args:
            raw_plate: Plate as scanned or typed, in any case or spacing
            via: Entry point label used when no caller_info is given
            caller_info: Free-form caller context stored with the session

        Returns:
            The persisted call session; its channel is the canonical plate

        Raises:
            ResolutionError: If the plate does not resolve to an active, owned vehicle
            CallInsertError: If the session row cannot be written
        """
        resolved = await self.resolver.resolve(raw_plate)
        if caller_info is None:
            caller_info = {"via": via or "api"}

        call = await self.store.create_call(
            plate=resolved.plate,
            owner_id=resolved.owner_id,
            channel=resolved.plate,
            caller_info=caller_info,
        )
        logger.info(
            f"[SESSION MANAGER] Call {call.id} ringing for {resolved.plate} "
            f"(requested {resolved.requested}, matched {resolved.stage})"
        )
        return call

    async def get_call(self, call_id: str) -> CallSession:
        call = await self.store.get_call(call_id)
        if call is None:
            raise CallNotFoundError(f"Call {call_id} not found", call_id=call_id)
        return call

    async def get_fresh_ringing(
        self, owner_id: str, now: Optional[datetime] = None
    ) -> Optional[CallSession]:
        """Newest ringing call for the owner inside the staleness window."""
        now = now or datetime.utcnow()
        return await self.store.get_latest_ringing(owner_id, since=now - self.staleness)

    async def transition(self, call_id: str, status: CallStatus) -> TransitionResult:
        return await self.store.transition(call_id, status)

    async def expire_stale_calls(self, now: Optional[datetime] = None) -> int:
        """Time out ringing calls older than the staleness window."""
        now = now or datetime.utcnow()
        expired = await self.store.expire_stale_ringing(cutoff=now - self.staleness)
        if expired:
            logger.info(f"[SESSION MANAGER] Timed out {len(expired)} stale ringing calls")
        return len(expired)
