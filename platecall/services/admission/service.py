"""Admission service issuing scoped Agora RTC tokens."""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from agora_token_builder import RtcTokenBuilder

from platecall.core.errors import (
    AdmissionConfigError,
    ChannelDisabledError,
    ChannelNotFoundError,
    InvalidRequestError,
    MissingChannelError,
)
from platecall.services.persistence.vehicles import VehiclePersistenceService
from platecall.services.plates.resolver import normalize_plate

logger = logging.getLogger(__name__)

# Agora RTC role values
ROLE_PUBLISHER = 1
ROLE_SUBSCRIBER = 2

ROLES = {
    "publisher": ROLE_PUBLISHER,
    "subscriber": ROLE_SUBSCRIBER,
}


@dataclass(frozen=True)
class AdmissionToken:
    """Credentials admitting one participant to one media room."""

    app_id: str
    channel: str
    uid: int
    token: str
    expire_at: int


def build_rtc_token(
    app_id: str, app_certificate: str, channel: str, uid: int, role: int, expire_at: int
) -> str:
    return RtcTokenBuilder.buildTokenWithUid(app_id, app_certificate, channel, uid, role, expire_at)


class AdmissionService:
    """Issues media tokens, re-checking that the channel is an active vehicle."""

    def __init__(
        self,
        vehicles: VehiclePersistenceService,
        app_id: Optional[str],
        app_certificate: Optional[str],
        default_ttl_seconds: int = 3600,
        max_ttl_seconds: int = 86400,
        clock: Callable[[], float] = time.time,
        token_builder: Callable[..., str] = build_rtc_token,
    ):
        self.vehicles = vehicles
        self.app_id = app_id
        self.app_certificate = app_certificate
        self.default_ttl_seconds = default_ttl_seconds
        self.max_ttl_seconds = max_ttl_seconds
        self.clock = clock
        self.token_builder = token_builder

    async def check_channel(self, channel: Optional[str]) -> str:
        """Return the canonical channel if it belongs to an active vehicle."""
        normalized = normalize_plate(channel)
        if not normalized:
            raise MissingChannelError("Missing 'channel'")

        vehicle = await self.vehicles.find_active_exact(normalized)
        if vehicle is None:
            vehicle = await self.vehicles.find_active_case_insensitive(normalized)
        if vehicle is None:
            if await self.vehicles.find_any(normalized) is not None:
                raise ChannelDisabledError(
                    f'Channel "{normalized}" is disabled', channel=normalized
                )
            raise ChannelNotFoundError(f'Unknown channel "{normalized}"', channel=normalized)
        return vehicle.plate

    async def issue_token(
        self,
        channel: Optional[str],
        role: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        uid: int = 0,
    ) -> AdmissionToken:
        """
        Issue a token for ``channel``.

        Args:
            channel: Media room name, normally the canonical plate
            role: "publisher" (default) or "subscriber"
            ttl_seconds: Token lifetime; defaults and caps come from settings
            uid: Agora user id, 0 lets the SDK assign one

        Returns:
            AdmissionToken with an absolute unix expiry
        """
        role = role or "publisher"
        if role not in ROLES:
            raise InvalidRequestError(f"Invalid role: {role}")
        if ttl_seconds is None:
            ttl_seconds = self.default_ttl_seconds
        if ttl_seconds <= 0:
            raise InvalidRequestError("ttlSeconds must be positive")
        ttl_seconds = min(ttl_seconds, self.max_ttl_seconds)
        if uid < 0:
            raise InvalidRequestError("uid must not be negative")

        canonical = await self.check_channel(channel)

        if not self.app_id or not self.app_certificate:
            logger.error("[ADMISSION] AGORA_APP_ID or AGORA_APP_CERTIFICATE is not configured")
            raise AdmissionConfigError(
                "Server misconfigured: missing Agora credentials",
                have={"app_id": bool(self.app_id), "certificate": bool(self.app_certificate)},
            )

        expire_at = int(self.clock()) + int(ttl_seconds)
        token = self.token_builder(
            self.app_id, self.app_certificate, canonical, uid, ROLES[role], expire_at
        )
        logger.info(f"[ADMISSION] Issued {role} token for {canonical} (uid {uid}, ttl {ttl_seconds}s)")
        return AdmissionToken(
            app_id=self.app_id,
            channel=canonical,
            uid=uid,
            token=token,
            expire_at=expire_at,
        )
