"""HTTP client for the call signaling backend."""
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import quote

import httpx

from platecall.core.errors import GatewayError, error_from_payload
from platecall.db.models import CallStatus
from platecall.services.call_session.models import CallSessionView, TransitionResult
from platecall.services.media.base import MediaCredentials
from platecall.services.signaling.gateway import CallGateway

logger = logging.getLogger(__name__)


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield the data payload of each server-sent event, skipping comments."""
    data_lines = []
    async for line in lines:
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if field == "data":
            data_lines.append(value[1:] if value.startswith(" ") else value)
    if data_lines:
        yield "\n".join(data_lines)


class HttpCallGateway(CallGateway):
    """CallGateway over the REST and SSE endpoints."""

    def __init__(
        self,
        base_url: str = "",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise GatewayError(f"Backend unreachable: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {"error": response.text}

        if response.is_error or (isinstance(payload, dict) and payload.get("ok") is False):
            raise error_from_payload(response.status_code, payload)
        return payload

    async def start_call(
        self,
        plate: str,
        via: Optional[str] = None,
        caller_info: Optional[Dict[str, Any]] = None,
    ) -> CallSessionView:
        body: Dict[str, Any] = {"plate": plate}
        if via is not None:
            body["via"] = via
        if caller_info is not None:
            body["caller_info"] = caller_info
        payload = await self._request("POST", "/api/call/start", json=body)
        return CallSessionView.model_validate(payload["call"])

    async def get_fresh_ringing(self, owner_id: str) -> Optional[CallSessionView]:
        payload = await self._request("GET", f"/api/owners/{quote(owner_id, safe='')}/calls/ringing")
        call = payload.get("call")
        return CallSessionView.model_validate(call) if call else None

    async def update_status(self, call_id: str, status: CallStatus) -> TransitionResult:
        payload = await self._request(
            "POST",
            f"/api/calls/{quote(call_id, safe='')}/status",
            json={"status": CallStatus(status).value},
        )
        return TransitionResult(
            call=CallSessionView.model_validate(payload["call"]),
            applied=bool(payload.get("applied")),
        )

    async def issue_token(self, channel: str, role: str = "publisher") -> MediaCredentials:
        payload = await self._request(
            "POST", "/api/agora-token", json={"channel": channel, "role": role}
        )
        return MediaCredentials(
            app_id=payload["appId"],
            channel=payload["channel"],
            uid=int(payload.get("uid") or 0),
            token=payload["token"],
            expire_at=payload.get("expireAt"),
        )

    async def call_events(self, owner_id: str) -> AsyncIterator[CallSessionView]:
        url = f"/api/owners/{quote(owner_id, safe='')}/calls/events"
        try:
            async with self._client.stream("GET", url, timeout=None) as response:
                if response.is_error:
                    raise GatewayError(f"Event stream rejected with status {response.status_code}")
                async for data in iter_sse_data(response.aiter_lines()):
                    try:
                        yield CallSessionView.model_validate(json.loads(data))
                    except ValueError as e:
                        logger.debug(f"[GATEWAY] Skipping malformed event: {e}")
        except httpx.HTTPError as e:
            raise GatewayError(f"Event stream failed: {e}") from e
