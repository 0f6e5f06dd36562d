"""External media adapter and the one-time strategy selection."""
import importlib
import inspect
import logging
from functools import lru_cache
from typing import Any, List, Optional

from platecall.services.media.base import (
    MediaCredentials,
    MediaHandle,
    MediaSessionAdapter,
    PublishListener,
    RemoteUser,
)
from platecall.services.media.inline import InlineMediaAdapter

logger = logging.getLogger(__name__)

REQUIRED_METHODS = (
    "join",
    "create_local_audio",
    "publish",
    "subscribe",
    "remote_users",
    "on_remote_published",
    "leave",
)


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def has_media_capability(target: Any) -> bool:
    """True when ``target`` exposes every adapter method."""
    return all(callable(getattr(target, name, None)) for name in REQUIRED_METHODS)


class ExternalMediaAdapter(MediaSessionAdapter):
    """Delegates to an SDK wrapper loaded at startup; sync or async methods."""

    def __init__(self, target: Any):
        self.target = target

    async def join(self, credentials: MediaCredentials) -> MediaHandle:
        handle = await _resolve(self.target.join(credentials))
        if isinstance(handle, MediaHandle):
            return handle
        return MediaHandle(channel=credentials.channel, uid=credentials.uid, native=handle)

    async def create_local_audio(self) -> Any:
        return await _resolve(self.target.create_local_audio())

    async def publish(self, handle: MediaHandle, local_audio: Any) -> None:
        await _resolve(self.target.publish(handle, local_audio))

    async def subscribe(self, handle: MediaHandle, remote_user: RemoteUser) -> None:
        await _resolve(self.target.subscribe(handle, remote_user))

    def remote_users(self, handle: MediaHandle) -> List[RemoteUser]:
        return list(self.target.remote_users(handle))

    def on_remote_published(self, handle: MediaHandle, listener: PublishListener) -> None:
        self.target.on_remote_published(handle, listener)

    async def leave(self, handle: MediaHandle) -> None:
        await _resolve(self.target.leave(handle))


@lru_cache(maxsize=None)
def load_media_adapter(path: Optional[str] = None) -> MediaSessionAdapter:
    """
    Pick the media adapter once.

    ``path`` is ``"package.module:factory"``. The factory's result is used
    when it exposes the adapter capability; any import or probe failure falls
    back to the inline adapter.
    """
    if not path:
        return InlineMediaAdapter()

    module_name, _, attribute = path.partition(":")
    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attribute or "create_adapter")
        target = factory()
    except Exception as e:
        logger.warning(
            f"[MEDIA] Could not load media adapter {path!r} ({type(e).__name__}: {e}); "
            f"using inline adapter"
        )
        return InlineMediaAdapter()

    if isinstance(target, MediaSessionAdapter):
        logger.info(f"[MEDIA] Using media adapter {path}")
        return target
    if has_media_capability(target):
        logger.info(f"[MEDIA] Using external media adapter {path}")
        return ExternalMediaAdapter(target)

    logger.warning(f"[MEDIA] {path!r} lacks the media adapter methods; using inline adapter")
    return InlineMediaAdapter()
