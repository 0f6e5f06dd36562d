"""Per-call media resource owned by a signaling engine."""
import logging
from typing import Optional, Set, Union

from platecall.core.errors import MediaError
from platecall.services.media.base import MediaHandle, MediaSessionAdapter, RemoteUser
from platecall.services.signaling.gateway import CallGateway

logger = logging.getLogger(__name__)


class MediaSession:
    """Joins one room for one call and leaves it exactly once.

    Admission errors from the gateway propagate unchanged; anything the
    adapter raises becomes a MediaError with a readable message.
    """

    def __init__(self, gateway: CallGateway, adapter: MediaSessionAdapter, role: str = "publisher"):
        self.gateway = gateway
        self.adapter = adapter
        self.role = role
        self.handle: Optional[MediaHandle] = None
        self.subscribed: Set[Union[int, str]] = set()

    @property
    def joined(self) -> bool:
        return self.handle is not None

    async def open(self, channel: str) -> None:
        """Fetch a token, join ``channel``, publish the mic and subscribe to remote audio."""
        if self.handle is not None:
            raise MediaError(f"Already joined {self.handle.channel}")

        credentials = await self.gateway.issue_token(channel, role=self.role)

        try:
            self.handle = await self.adapter.join(credentials)
        except MediaError:
            raise
        except Exception as e:
            raise MediaError(f"Could not join the call: {e}") from e

        try:
            local_audio = await self.adapter.create_local_audio()
            await self.adapter.publish(self.handle, local_audio)
        except MediaError:
            raise
        except Exception as e:
            raise MediaError(f"Microphone unavailable: {e}") from e

        self.adapter.on_remote_published(self.handle, self._on_remote_published)
        # A remote participant may have published before our listener existed.
        for user in self.adapter.remote_users(self.handle):
            if user.has_audio:
                await self._subscribe(user)
        logger.info(f"[MEDIA SESSION] Joined {channel} as {self.handle.uid}")

    async def _on_remote_published(self, user: RemoteUser) -> None:
        if self.handle is not None:
            await self._subscribe(user)

    async def _subscribe(self, user: RemoteUser) -> None:
        if user.uid in self.subscribed:
            return
        try:
            await self.adapter.subscribe(self.handle, user)
        except Exception as e:
            logger.warning(f"[MEDIA SESSION] Subscribe to {user.uid} failed: {e}")
            return
        self.subscribed.add(user.uid)

    async def close(self) -> None:
        """Leave the room. Idempotent."""
        handle = self.handle
        self.handle = None
        self.subscribed.clear()
        if handle is None:
            return
        try:
            await self.adapter.leave(handle)
        except Exception as e:
            raise MediaError(f"Leaving the call failed: {e}") from e
        logger.info(f"[MEDIA SESSION] Left {handle.channel}")
