"""Media session adapter interface."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Union


@dataclass(frozen=True)
class MediaCredentials:
    """Admission token plus the room it is scoped to."""

    app_id: str
    channel: str
    uid: int
    token: str
    expire_at: Optional[int] = None


@dataclass(frozen=True)
class RemoteUser:
    """Another participant in the room."""

    uid: Union[int, str]
    has_audio: bool = False


@dataclass
class MediaHandle:
    """An active join returned by an adapter."""

    channel: str
    uid: Union[int, str]
    native: Any = field(default=None, repr=False)


PublishListener = Callable[[RemoteUser], Awaitable[None]]


class MediaSessionAdapter(ABC):
    """Abstract base class for real-time media SDK wrappers."""

    @abstractmethod
    async def join(self, credentials: MediaCredentials) -> MediaHandle:
        """Join the room named in the credentials."""
        pass

    @abstractmethod
    async def create_local_audio(self) -> Any:
        """Open the local microphone track."""
        pass

    @abstractmethod
    async def publish(self, handle: MediaHandle, local_audio: Any) -> None:
        """Publish a local audio track into the room."""
        pass

    @abstractmethod
    async def subscribe(self, handle: MediaHandle, remote_user: RemoteUser) -> None:
        """Subscribe to and play a remote participant's audio."""
        pass

    @abstractmethod
    def remote_users(self, handle: MediaHandle) -> List[RemoteUser]:
        """Participants already present in the room."""
        pass

    @abstractmethod
    def on_remote_published(self, handle: MediaHandle, listener: PublishListener) -> None:
        """Register a callback for remote participants publishing audio."""
        pass

    @abstractmethod
    async def leave(self, handle: MediaHandle) -> None:
        """Leave the room and release local tracks published through the handle."""
        pass
