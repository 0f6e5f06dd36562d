"""Caller-side call signaling engine."""
import enum
import logging
from typing import Any, Dict, Optional

from platecall.core.errors import PlateCallError
from platecall.db.models import CallStatus
from platecall.services.call_session.models import CallSessionView
from platecall.services.media.base import MediaSessionAdapter
from platecall.services.signaling.gateway import CallGateway
from platecall.services.signaling.media_session import MediaSession

logger = logging.getLogger(__name__)


class CallerState(str, enum.Enum):
    IDLE = "idle"
    CALLING = "calling"
    CONNECTED = "connected"


class CallerCallEngine:
    """Creates a call for a scanned plate and joins its media room."""

    def __init__(self, gateway: CallGateway, media_adapter: MediaSessionAdapter):
        self.gateway = gateway
        self.media_adapter = media_adapter
        self.state = CallerState.IDLE
        self.call: Optional[CallSessionView] = None
        self.media: Optional[MediaSession] = None
        self.error: Optional[str] = None

    async def start(
        self,
        plate: str,
        via: Optional[str] = "qr",
        caller_info: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Start a call to the owner of ``plate``. Ignored unless idle."""
        if self.state != CallerState.IDLE:
            logger.debug(f"[CALLER ENGINE] Start ignored while {self.state.value}")
            return False

        self.state = CallerState.CALLING
        self.error = None
        media = MediaSession(self.gateway, self.media_adapter)
        try:
            call = await self.gateway.start_call(plate, via=via, caller_info=caller_info)
            if self.state != CallerState.CALLING:
                # Hung up while the session was being created.
                self.call = call
                await self.hangup()
                return False
            self.call = call
            self.media = media
            await media.open(call.channel)
        except Exception as e:
            self.error = e.message if isinstance(e, PlateCallError) else str(e)
            logger.error(f"[CALLER ENGINE] Call to {plate} failed: {self.error}")
            if self.state == CallerState.CALLING:
                await self.hangup()
            if self.media is not media:
                # A hangup during the join found no handle yet; the join may have succeeded since.
                await self._leave(media)
            return False

        if self.media is not media:
            # Hung up while the join was in flight.
            await self._leave(media)
            return False

        self.state = CallerState.CONNECTED
        logger.info(f"[CALLER ENGINE] Connected to {self.call.channel}")
        return True

    async def hangup(self) -> None:
        """Leave media and end the call, best effort, then return to idle."""
        call, media = self.call, self.media
        self.call = None
        self.media = None
        if media is not None:
            await self._leave(media)
        if call is not None:
            try:
                await self.gateway.update_status(call.id, CallStatus.ENDED)
            except Exception as e:
                logger.warning(f"[CALLER ENGINE] Could not mark {call.id} ended: {e}")
        self.state = CallerState.IDLE

    async def _leave(self, media: MediaSession) -> None:
        try:
            await media.close()
        except Exception as e:
            logger.warning(f"[CALLER ENGINE] Media leave failed: {e}")
