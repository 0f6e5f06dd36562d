"""Owner-side delivery of call rows from the push stream and the poll loop."""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from platecall.services.call_session.models import CallSessionView
from platecall.services.signaling.gateway import CallGateway

logger = logging.getLogger(__name__)

CallHandler = Callable[[CallSessionView], Awaitable[None]]


class OwnerCallFeed:
    """Runs push and poll side by side, feeding both into one handler.

    Transport failures are never surfaced: the push loop reconnects after a
    delay and the poll loop bounds the delay of anything push missed.
    """

    def __init__(
        self,
        gateway: CallGateway,
        owner_id: str,
        handler: CallHandler,
        poll_interval_seconds: float = 3.0,
        reconnect_delay_seconds: float = 2.0,
    ):
        self.gateway = gateway
        self.owner_id = owner_id
        self.handler = handler
        self.poll_interval_seconds = poll_interval_seconds
        self.reconnect_delay_seconds = reconnect_delay_seconds
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._push_loop(), name=f"push:{self.owner_id}"),
            asyncio.create_task(self._poll_loop(), name=f"poll:{self.owner_id}"),
        ]

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def poll_once(self) -> Optional[CallSessionView]:
        """Fetch the newest fresh ringing row and hand it to the handler."""
        try:
            call = await self.gateway.get_fresh_ringing(self.owner_id)
        except Exception as e:
            logger.debug(f"[FEED] Poll failed for owner {self.owner_id}: {e}")
            return None
        if call is not None:
            await self.handler(call)
        return call

    async def _poll_loop(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self.poll_interval_seconds)

    async def _push_loop(self) -> None:
        while True:
            try:
                async for call in self.gateway.call_events(self.owner_id):
                    await self.handler(call)
                logger.debug(f"[FEED] Push stream closed for owner {self.owner_id}")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug(f"[FEED] Push stream dropped for owner {self.owner_id}: {e}")
            await asyncio.sleep(self.reconnect_delay_seconds)
