"""Signaling engines wired to the backend from settings."""
from typing import Optional

from platecall.clients.http_gateway import HttpCallGateway
from platecall.core.config import settings
from platecall.services.media.external import load_media_adapter
from platecall.services.signaling.caller import CallerCallEngine
from platecall.services.signaling.gateway import CallGateway
from platecall.services.signaling.owner import OwnerCallEngine
from platecall.services.signaling.ringtone import Ringtone


def create_gateway(base_url: Optional[str] = None) -> HttpCallGateway:
    """HTTP gateway for ``base_url``, defaulting to BASE_URL or the local server."""
    return HttpCallGateway(base_url or settings.base_url or f"http://localhost:{settings.port}")


def create_owner_engine(
    owner_id: str,
    gateway: Optional[CallGateway] = None,
    ringtone: Optional[Ringtone] = None,
) -> OwnerCallEngine:
    return OwnerCallEngine(
        gateway or create_gateway(),
        owner_id,
        load_media_adapter(settings.media_adapter),
        ringtone=ringtone,
        staleness_seconds=settings.ringing_staleness_seconds,
        poll_interval_seconds=settings.owner_poll_interval_seconds,
    )


def create_caller_engine(gateway: Optional[CallGateway] = None) -> CallerCallEngine:
    return CallerCallEngine(gateway or create_gateway(), load_media_adapter(settings.media_adapter))
