"""In-process media adapter.

Rooms live in memory: participants that join the same channel see each
other's published audio. Nothing is transported; it backs local runs and
tests where both engines share one adapter instance.
"""
import itertools
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Union

from platecall.core.errors import MediaError
from platecall.services.media.base import (
    MediaCredentials,
    MediaHandle,
    MediaSessionAdapter,
    PublishListener,
    RemoteUser,
)

logger = logging.getLogger(__name__)


@dataclass
class InlineAudioTrack:
    """Stand-in for a microphone track."""

    label: str = "microphone"
    closed: bool = False

    def close(self) -> None:
        self.closed = True


@dataclass
class _Participant:
    uid: Union[int, str]
    audio: Optional[InlineAudioTrack] = None
    listener: Optional[PublishListener] = None
    subscriptions: Set[Union[int, str]] = field(default_factory=set)


class InlineMediaAdapter(MediaSessionAdapter):
    """Media adapter keeping rooms in process memory."""

    def __init__(self):
        self._rooms: Dict[str, Dict[Union[int, str], _Participant]] = {}
        self._uids = itertools.count(1000)

    def _participant(self, handle: MediaHandle) -> _Participant:
        participant = self._rooms.get(handle.channel, {}).get(handle.uid)
        if participant is None:
            raise MediaError(f"Not joined to {handle.channel}")
        return participant

    async def join(self, credentials: MediaCredentials) -> MediaHandle:
        if not credentials.token:
            raise MediaError("Missing media token")
        room = self._rooms.setdefault(credentials.channel, {})
        uid = credentials.uid or next(self._uids)
        if uid in room:
            raise MediaError(f"uid {uid} already joined {credentials.channel}")
        room[uid] = _Participant(uid=uid)
        logger.debug(f"[MEDIA] {uid} joined {credentials.channel}")
        return MediaHandle(channel=credentials.channel, uid=uid)

    async def create_local_audio(self) -> InlineAudioTrack:
        return InlineAudioTrack()

    async def publish(self, handle: MediaHandle, local_audio: InlineAudioTrack) -> None:
        participant = self._participant(handle)
        participant.audio = local_audio
        for other in list(self._rooms.get(handle.channel, {}).values()):
            if other.uid != handle.uid and other.listener is not None:
                await other.listener(RemoteUser(uid=handle.uid, has_audio=True))

    async def subscribe(self, handle: MediaHandle, remote_user: RemoteUser) -> None:
        self._participant(handle).subscriptions.add(remote_user.uid)

    def remote_users(self, handle: MediaHandle) -> List[RemoteUser]:
        return [
            RemoteUser(uid=p.uid, has_audio=p.audio is not None)
            for p in self._rooms.get(handle.channel, {}).values()
            if p.uid != handle.uid
        ]

    def on_remote_published(self, handle: MediaHandle, listener: PublishListener) -> None:
        self._participant(handle).listener = listener

    async def leave(self, handle: MediaHandle) -> None:
        room = self._rooms.get(handle.channel, {})
        participant = room.pop(handle.uid, None)
        if participant and participant.audio:
            participant.audio.close()
        if not room:
            self._rooms.pop(handle.channel, None)
        logger.debug(f"[MEDIA] {handle.uid} left {handle.channel}")

    def participants(self, channel: str) -> List[Union[int, str]]:
        """Uids currently joined to ``channel``."""
        return list(self._rooms.get(channel, {}))

    def subscriptions(self, handle: MediaHandle) -> Set[Union[int, str]]:
        return set(self._participant(handle).subscriptions)
