"""Call session persistence service."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from platecall.core.errors import (
    CallInsertError,
    CallNotFoundError,
    InvalidTransitionError,
    PersistenceError,
)
from platecall.db.models import CallSession, CallStatus
from platecall.services.call_session.models import CallEvent, CallSessionView, TransitionResult
from platecall.services.notifications.hub import CallEventHub

logger = logging.getLogger(__name__)

# Source states each target status may be written from. Nothing returns to ringing.
TRANSITION_SOURCES: Dict[CallStatus, tuple] = {
    CallStatus.ACCEPTED: (CallStatus.RINGING,),
    CallStatus.DECLINED: (CallStatus.RINGING,),
    CallStatus.TIMEOUT: (CallStatus.RINGING,),
    CallStatus.ENDED: (CallStatus.RINGING, CallStatus.ACCEPTED),
}


class CallSessionStore:
    """Persists call sessions and enforces status transitions.

    Transitions are conditional updates, so concurrent writers resolve to
    first write wins and a write on a closed row is a reported no-op.
    """

    def __init__(self, db: AsyncSession, hub: Optional[CallEventHub] = None):
        self.db = db
        self.hub = hub

    def _publish(self, event_type: str, call: CallSession) -> None:
        if self.hub is None:
            return
        self.hub.publish(CallEvent(type=event_type, call=CallSessionView.model_validate(call)))

    async def create_call(
        self,
        plate: str,
        owner_id: str,
        channel: str,
        caller_info: Optional[Dict[str, Any]] = None,
    ) -> CallSession:
        """Insert a new ringing call session."""
        call = CallSession(
            plate=plate,
            owner_id=owner_id,
            channel=channel,
            status=CallStatus.RINGING.value,
            caller_info=caller_info,
        )
        self.db.add(call)
        try:
            await self.db.commit()
            await self.db.refresh(call)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[CALL STORE] Insert failed for plate {plate}: {e}", exc_info=True)
            raise CallInsertError(f"Insert error: {e}") from e

        logger.info(f"[CALL STORE] Created call {call.id} for channel {channel} (owner {owner_id})")
        self._publish("INSERT", call)
        return call

    async def get_call(self, call_id: str) -> Optional[CallSession]:
        """Get a call session by id, reloading any cached copy."""
        try:
            result = await self.db.execute(
                select(CallSession)
                .where(CallSession.id == call_id)
                .execution_options(populate_existing=True)
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"DB error: {e}") from e
        return result.scalar_one_or_none()

    async def get_latest_ringing(self, owner_id: str, since: datetime) -> Optional[CallSession]:
        """Newest ringing session for the owner created after ``since``."""
        try:
            result = await self.db.execute(
                select(CallSession)
                .where(
                    CallSession.owner_id == owner_id,
                    CallSession.status == CallStatus.RINGING.value,
                    CallSession.created_at > since,
                )
                .order_by(CallSession.created_at.desc())
                .limit(1)
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"DB error: {e}") from e
        return result.scalars().first()

    async def transition(
        self,
        call_id: str,
        status: CallStatus,
        now: Optional[datetime] = None,
    ) -> TransitionResult:
        """Move a call to ``status`` if its current status allows it."""
        try:
            status = CallStatus(status)
        except ValueError:
            raise InvalidTransitionError(f"Unknown status: {status}") from None
        sources = TRANSITION_SOURCES.get(status)
        if sources is None:
            raise InvalidTransitionError(f"Cannot transition a call to {status.value}")

        now = now or datetime.utcnow()
        values: Dict[str, Any] = {"status": status.value}
        if status == CallStatus.ACCEPTED:
            values["accepted_at"] = now
        elif status == CallStatus.ENDED:
            values["ended_at"] = now

        try:
            result = await self.db.execute(
                update(CallSession)
                .where(
                    CallSession.id == call_id,
                    CallSession.status.in_([s.value for s in sources]),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[CALL STORE] Transition of {call_id} to {status.value} failed: {e}", exc_info=True)
            raise PersistenceError(f"Update error: {e}") from e

        call = await self.get_call(call_id)
        if call is None:
            raise CallNotFoundError(f"Call {call_id} not found", call_id=call_id)

        applied = result.rowcount == 1
        if applied:
            logger.info(f"[CALL STORE] Call {call_id} -> {status.value}")
            self._publish("UPDATE", call)
        else:
            logger.info(
                f"[CALL STORE] Ignored {status.value} for call {call_id}: "
                f"already {call.status}"
            )
        return TransitionResult(call=CallSessionView.model_validate(call), applied=applied)

    async def expire_stale_ringing(self, cutoff: datetime) -> List[str]:
        """Write ``timeout`` for ringing calls created before ``cutoff``."""
        try:
            result = await self.db.execute(
                select(CallSession.id).where(
                    CallSession.status == CallStatus.RINGING.value,
                    CallSession.created_at <= cutoff,
                )
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"DB error: {e}") from e

        expired = []
        for call_id in result.scalars().all():
            outcome = await self.transition(call_id, CallStatus.TIMEOUT)
            if outcome.applied:
                expired.append(call_id)
        return expired
