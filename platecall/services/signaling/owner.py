"""Owner-side call signaling engine."""
import asyncio
import enum
import logging
from datetime import datetime
from typing import Callable, Optional

from platecall.core.errors import PlateCallError
from platecall.db.models import TERMINAL_STATUSES, CallStatus
from platecall.services.call_session.models import CallSessionView, TransitionResult
from platecall.services.media.base import MediaSessionAdapter
from platecall.services.signaling.feed import OwnerCallFeed
from platecall.services.signaling.gateway import CallGateway
from platecall.services.signaling.media_session import MediaSession
from platecall.services.signaling.reconciler import RINGING_STALENESS_SECONDS, RingingReconciler
from platecall.services.signaling.ringtone import LoggingRingtone, Ringtone

logger = logging.getLogger(__name__)


class OwnerState(str, enum.Enum):
    WAITING = "waiting"
    RINGING = "ringing"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def _describe(error: Exception) -> str:
    return error.message if isinstance(error, PlateCallError) else str(error) or type(error).__name__


class OwnerCallEngine:
    """
    Drives the owner's side of a call: waiting, ringing, connecting, connected.

    Rows arrive through ``handle_call`` from both the push stream and the poll
    loop. Every exit from a call (decline, hangup, failed join, close) stops
    the ringtone and leaves any joined room, and ``state`` always returns to
    ``waiting`` with ``error`` holding the last failure message.
    """

    def __init__(
        self,
        gateway: CallGateway,
        owner_id: str,
        media_adapter: MediaSessionAdapter,
        ringtone: Optional[Ringtone] = None,
        staleness_seconds: float = RINGING_STALENESS_SECONDS,
        poll_interval_seconds: float = 3.0,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.gateway = gateway
        self.owner_id = owner_id
        self.media_adapter = media_adapter
        self.ringtone = ringtone or LoggingRingtone()
        self.reconciler = RingingReconciler(staleness_seconds, clock=clock)
        self.feed = OwnerCallFeed(
            gateway, owner_id, self.handle_call, poll_interval_seconds=poll_interval_seconds
        )

        self.state = OwnerState.WAITING
        self.incoming: Optional[CallSessionView] = None
        self.media: Optional[MediaSession] = None
        self.error: Optional[str] = None
        self._ring_timer: Optional[asyncio.Task] = None

    @property
    def current_id(self) -> Optional[str]:
        return self.reconciler.current_id

    async def start(self) -> None:
        """Begin listening for calls addressed to this owner."""
        await self.feed.start()

    async def handle_call(self, call: CallSessionView) -> None:
        """Entry point for rows from either delivery path."""
        if await self._follow_remote_close(call):
            return
        await self.reconcile(call)

    async def reconcile(self, call: CallSessionView) -> bool:
        """Surface ``call`` as ringing unless it is stale, closed or already shown."""
        if self.state in (OwnerState.CONNECTING, OwnerState.CONNECTED):
            return False
        if (
            self.state == OwnerState.RINGING
            and self.incoming is not None
            and call.id != self.incoming.id
            and call.created_at <= self.incoming.created_at
        ):
            return False
        if not self.reconciler.admit(call):
            return False

        logger.info(f"[OWNER ENGINE] Incoming call {call.id} on {call.channel}")
        if self.state == OwnerState.RINGING:
            # Replacing an older ringing call; one ringtone at a time.
            self.ringtone.stop()
        self.incoming = call
        self.state = OwnerState.RINGING
        self.error = None
        self.ringtone.start()
        self._arm_ring_timeout(call)
        return True

    async def _follow_remote_close(self, call: CallSessionView) -> bool:
        """Tear down when the shown call was closed elsewhere (caller hangup, sweeper)."""
        incoming = self.incoming
        if incoming is None or call.id != incoming.id:
            return False
        if CallStatus(call.status) not in TERMINAL_STATUSES:
            return False

        logger.info(f"[OWNER ENGINE] Call {call.id} closed remotely ({call.status.value})")
        if self.state == OwnerState.RINGING:
            self._cancel_ring_timeout()
            self.ringtone.stop()
            self._reset(call.id)
        else:
            await self.hangup()
        return True

    async def accept(self) -> bool:
        """Accept the ringing call and join its media room."""
        call = self.incoming
        if call is None or self.state != OwnerState.RINGING:
            return False

        self._cancel_ring_timeout()
        self.ringtone.stop()
        self.state = OwnerState.CONNECTING
        self.error = None

        try:
            result = await self.gateway.update_status(call.id, CallStatus.ACCEPTED)
        except Exception as e:
            logger.error(f"[OWNER ENGINE] Accept write failed for {call.id}: {e}")
            self.error = _describe(e)
            # Not closed: the row may still be ringing and can be retried.
            self._reset(call.id, closed=False)
            return False

        if not result.applied:
            self.error = f"Call is no longer available ({result.call.status.value})"
            self._reset(call.id)
            return False
        if self.state != OwnerState.CONNECTING or self.current_id != call.id:
            # Hung up while the accept write was in flight.
            return False

        self.incoming = result.call
        media = MediaSession(self.gateway, self.media_adapter)
        self.media = media
        try:
            await media.open(call.channel)
        except Exception as e:
            logger.error(f"[OWNER ENGINE] Media join failed for {call.id}: {_describe(e)}")
            self.error = _describe(e)
            if self.media is media:
                await self.hangup()
            else:
                await self._close_media(media)
            return False

        if self.media is not media:
            # Hung up while the join was in flight.
            await self._close_media(media)
            return False

        self.state = OwnerState.CONNECTED
        logger.info(f"[OWNER ENGINE] Connected to {call.channel}")
        return True

    async def decline(self) -> bool:
        """Decline the ringing call."""
        call = self.incoming
        if call is None or self.state != OwnerState.RINGING:
            return False

        self._cancel_ring_timeout()
        self.ringtone.stop()
        self.incoming = None
        try:
            await self._write_status(call.id, CallStatus.DECLINED)
        finally:
            self._reset(call.id)
        return True

    async def hangup(self) -> None:
        """End the current call. Status write and media leave are both always attempted."""
        self._cancel_ring_timeout()
        self.ringtone.stop()

        call, media = self.incoming, self.media
        self.incoming = None
        self.media = None
        try:
            if call is not None:
                await self._write_status(call.id, CallStatus.ENDED)
        finally:
            if media is not None:
                await self._close_media(media)
            self._reset(call.id if call else None)

    async def close(self) -> None:
        """Teardown on unmount: stop listening and release every resource."""
        await self.feed.stop()
        if self.state in (OwnerState.CONNECTING, OwnerState.CONNECTED):
            await self.hangup()
            return
        self._cancel_ring_timeout()
        self.ringtone.stop()
        if self.incoming is not None:
            # Left ringing in the store; another device may still answer it.
            self._reset(self.incoming.id, closed=False)

    async def _write_status(
        self, call_id: str, status: CallStatus
    ) -> Optional[TransitionResult]:
        try:
            return await self.gateway.update_status(call_id, status)
        except Exception as e:
            logger.error(f"[OWNER ENGINE] Writing {status.value} for {call_id} failed: {e}")
            if self.error is None:
                self.error = _describe(e)
            return None

    async def _close_media(self, media: MediaSession) -> None:
        try:
            await media.close()
        except Exception as e:
            logger.error(f"[OWNER ENGINE] Media leave failed: {e}")

    def _reset(self, call_id: Optional[str], closed: bool = True) -> None:
        self.incoming = None
        self.state = OwnerState.WAITING
        self.reconciler.release(call_id, closed=closed)

    def _arm_ring_timeout(self, call: CallSessionView) -> None:
        self._cancel_ring_timeout()
        remaining = self.reconciler.staleness_seconds - self.reconciler.age_seconds(call)
        self._ring_timer = asyncio.create_task(self._expire_ringing(call.id, max(remaining, 0.0)))

    def _cancel_ring_timeout(self) -> None:
        timer, self._ring_timer = self._ring_timer, None
        if timer is not None and timer is not asyncio.current_task() and not timer.done():
            timer.cancel()

    async def _expire_ringing(self, call_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        if self.state != OwnerState.RINGING or self.incoming is None or self.incoming.id != call_id:
            return
        self._ring_timer = None
        logger.info(f"[OWNER ENGINE] Call {call_id} was not answered in time")
        self.ringtone.stop()
        self._reset(call_id)
        await self._write_status(call_id, CallStatus.TIMEOUT)
