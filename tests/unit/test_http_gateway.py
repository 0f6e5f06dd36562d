"""Unit tests for the HTTP gateway client."""
import json

import httpx
import pytest

from platecall.core.errors import (
    ChannelDisabledError,
    GatewayError,
    PlateNotFoundError,
)
from platecall.clients.http_gateway import HttpCallGateway, iter_sse_data
from platecall.db.models import CallStatus

CALL = {
    "id": "call-1",
    "plate": "AB123",
    "owner_id": "owner-1",
    "channel": "AB123",
    "status": "ringing",
    "caller_info": {"via": "qr"},
    "created_at": "2025-01-01T12:00:00",
    "accepted_at": None,
    "ended_at": None,
}


def _gateway(handler) -> HttpCallGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    return HttpCallGateway(client=client)


async def _lines(*lines):
    for line in lines:
        yield line


class TestIterSseData:
    """Test server-sent event parsing."""

    @pytest.mark.asyncio
    async def test_yields_data_and_skips_comments(self):
        lines = _lines(
            ": subscribed", "",
            "event: INSERT", 'data: {"a": 1}', "",
            ": heartbeat", "",
            "event: UPDATE", "data:{\"a\": 2}", "",
        )

        assert [item async for item in iter_sse_data(lines)] == ['{"a": 1}', '{"a": 2}']

    @pytest.mark.asyncio
    async def test_multiline_data_and_trailing_event(self):
        lines = _lines("data: one", "data: two")

        assert [item async for item in iter_sse_data(lines)] == ["one\ntwo"]


class TestHttpCallGateway:
    """Test REST calls and error mapping."""

    @pytest.mark.asyncio
    async def test_start_call(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"ok": True, "call": CALL})

        gateway = _gateway(handler)
        call = await gateway.start_call("ab 123", via="qr")

        assert call.id == "call-1"
        assert call.status == CallStatus.RINGING
        assert requests[0].url.path == "/api/call/start"
        assert json.loads(requests[0].content) == {"plate": "ab 123", "via": "qr"}
        await gateway.aclose()

    @pytest.mark.asyncio
    async def test_error_codes_map_to_exceptions(self):
        def handler(request):
            return httpx.Response(
                404,
                json={
                    "ok": False,
                    "error": 'No owner found for plate "zz" (normalized "ZZ")',
                    "code": "plate_not_found",
                    "plate": "ZZ",
                },
            )

        gateway = _gateway(handler)

        with pytest.raises(PlateNotFoundError) as exc_info:
            await gateway.start_call("zz")

        assert exc_info.value.extra == {"plate": "ZZ"}
        assert "zz" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        gateway = _gateway(handler)

        with pytest.raises(GatewayError):
            await gateway.get_fresh_ringing("owner-1")

    @pytest.mark.asyncio
    async def test_get_fresh_ringing_none(self):
        def handler(request):
            assert request.url.raw_path == b"/api/owners/owner%201/calls/ringing"
            return httpx.Response(200, json={"ok": True, "call": None})

        gateway = _gateway(handler)

        assert await gateway.get_fresh_ringing("owner 1") is None

    @pytest.mark.asyncio
    async def test_update_status(self):
        def handler(request):
            assert json.loads(request.content) == {"status": "declined"}
            return httpx.Response(
                200, json={"ok": True, "call": {**CALL, "status": "accepted"}, "applied": False}
            )

        gateway = _gateway(handler)
        result = await gateway.update_status("call-1", CallStatus.DECLINED)

        assert result.applied is False
        assert result.call.status == CallStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_issue_token(self):
        def handler(request):
            assert json.loads(request.content) == {"channel": "AB123", "role": "publisher"}
            return httpx.Response(
                200,
                json={"appId": "app", "channel": "AB123", "uid": 0, "token": "tok", "expireAt": 99},
            )

        gateway = _gateway(handler)
        credentials = await gateway.issue_token("AB123")

        assert credentials.app_id == "app"
        assert credentials.token == "tok"
        assert credentials.expire_at == 99

    @pytest.mark.asyncio
    async def test_issue_token_rejected(self):
        def handler(request):
            return httpx.Response(
                403, json={"ok": False, "error": "disabled", "code": "channel_disabled"}
            )

        gateway = _gateway(handler)

        with pytest.raises(ChannelDisabledError):
            await gateway.issue_token("AB123")

    @pytest.mark.asyncio
    async def test_call_events(self):
        body = (
            ": subscribed\n\n"
            f"event: INSERT\ndata: {json.dumps(CALL)}\n\n"
            "data: not json\n\n"
            f"event: UPDATE\ndata: {json.dumps({**CALL, 'status': 'ended'})}\n\n"
        )

        def handler(request):
            assert request.url.path == "/api/owners/owner-1/calls/events"
            return httpx.Response(
                200, content=body.encode(), headers={"content-type": "text/event-stream"}
            )

        gateway = _gateway(handler)
        calls = [call async for call in gateway.call_events("owner-1")]

        assert [call.status for call in calls] == [CallStatus.RINGING, CallStatus.ENDED]

    @pytest.mark.asyncio
    async def test_call_events_rejected(self):
        def handler(request):
            return httpx.Response(500, text="boom")

        gateway = _gateway(handler)

        with pytest.raises(GatewayError):
            async for _ in gateway.call_events("owner-1"):
                pass
