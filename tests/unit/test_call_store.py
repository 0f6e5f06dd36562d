"""Unit tests for call session persistence, the session manager and the sweeper."""
import pytest
from datetime import datetime, timedelta

from platecall.core.errors import CallNotFoundError, InvalidTransitionError, PlateNotFoundError
from platecall.db.models import CallStatus
from platecall.services.call_session.manager import CallSessionManager
from platecall.services.call_session.sweeper import sweep_once
from platecall.services.persistence.calls import CallSessionStore
from platecall.services.persistence.vehicles import VehiclePersistenceService


async def _age_call(db, call, seconds: int) -> None:
    call.created_at = datetime.utcnow() - timedelta(seconds=seconds)
    await db.commit()


class TestCallSessionStore:
    """Test call session store."""

    @pytest.mark.asyncio
    async def test_create_call(self, test_db):
        """Test creating a ringing call."""
        store = CallSessionStore(test_db)

        call = await store.create_call("AB123", "owner-1", "AB123", {"via": "qr"})

        assert call.id is not None
        assert call.status == "ringing"
        assert call.channel == "AB123"
        assert call.caller_info == {"via": "qr"}
        assert call.created_at is not None
        assert call.accepted_at is None
        assert call.ended_at is None

    @pytest.mark.asyncio
    async def test_accept_sets_accepted_at(self, test_db):
        store = CallSessionStore(test_db)
        call = await store.create_call("AB123", "owner-1", "AB123")

        result = await store.transition(call.id, CallStatus.ACCEPTED)

        assert result.applied is True
        assert result.call.status == CallStatus.ACCEPTED
        assert result.call.accepted_at is not None
        assert result.call.ended_at is None

    @pytest.mark.asyncio
    async def test_end_sets_ended_at(self, test_db):
        store = CallSessionStore(test_db)
        call = await store.create_call("AB123", "owner-1", "AB123")
        await store.transition(call.id, CallStatus.ACCEPTED)

        result = await store.transition(call.id, "ended")

        assert result.applied is True
        assert result.call.status == CallStatus.ENDED
        assert result.call.accepted_at is not None
        assert result.call.ended_at is not None

    @pytest.mark.asyncio
    async def test_decline_leaves_timestamps_empty(self, test_db):
        store = CallSessionStore(test_db)
        call = await store.create_call("AB123", "owner-1", "AB123")

        result = await store.transition(call.id, CallStatus.DECLINED)

        assert result.applied is True
        assert result.call.accepted_at is None
        assert result.call.ended_at is None

    @pytest.mark.asyncio
    async def test_first_write_wins(self, test_db):
        """Test that a decline after an accept is ignored."""
        store = CallSessionStore(test_db)
        call = await store.create_call("AB123", "owner-1", "AB123")

        accepted = await store.transition(call.id, CallStatus.ACCEPTED)
        declined = await store.transition(call.id, CallStatus.DECLINED)

        assert accepted.applied is True
        assert declined.applied is False
        assert declined.call.status == CallStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_terminal_rows_are_not_reopened(self, test_db):
        store = CallSessionStore(test_db)
        call = await store.create_call("AB123", "owner-1", "AB123")
        await store.transition(call.id, CallStatus.ENDED)

        for status in (CallStatus.ACCEPTED, CallStatus.DECLINED, CallStatus.TIMEOUT, CallStatus.ENDED):
            result = await store.transition(call.id, status)
            assert result.applied is False
            assert result.call.status == CallStatus.ENDED

    @pytest.mark.asyncio
    async def test_cannot_transition_to_ringing(self, test_db):
        store = CallSessionStore(test_db)
        call = await store.create_call("AB123", "owner-1", "AB123")

        with pytest.raises(InvalidTransitionError):
            await store.transition(call.id, CallStatus.RINGING)

    @pytest.mark.asyncio
    async def test_unknown_status(self, test_db):
        store = CallSessionStore(test_db)
        call = await store.create_call("AB123", "owner-1", "AB123")

        with pytest.raises(InvalidTransitionError):
            await store.transition(call.id, "answered")

    @pytest.mark.asyncio
    async def test_unknown_call(self, test_db):
        store = CallSessionStore(test_db)

        with pytest.raises(CallNotFoundError):
            await store.transition("missing-id", CallStatus.ENDED)

    @pytest.mark.asyncio
    async def test_publishes_insert_and_applied_updates(self, test_db, hub):
        store = CallSessionStore(test_db, hub)

        async with hub.subscribe("owner-1") as queue:
            call = await store.create_call("AB123", "owner-1", "AB123")
            await store.transition(call.id, CallStatus.DECLINED)
            await store.transition(call.id, CallStatus.ACCEPTED)  # ignored

            events = []
            while not queue.empty():
                events.append(queue.get_nowait())

        assert [e.type for e in events] == ["INSERT", "UPDATE"]
        assert events[0].call.status == CallStatus.RINGING
        assert events[1].call.status == CallStatus.DECLINED

    @pytest.mark.asyncio
    async def test_get_latest_ringing(self, test_db):
        store = CallSessionStore(test_db)
        older = await store.create_call("AB123", "owner-1", "AB123")
        await _age_call(test_db, older, 30)
        newer = await store.create_call("AB123", "owner-1", "AB123")
        await store.create_call("XY9", "owner-2", "XY9")

        latest = await store.get_latest_ringing("owner-1", since=datetime.utcnow() - timedelta(minutes=2))

        assert latest.id == newer.id

    @pytest.mark.asyncio
    async def test_expire_stale_ringing(self, test_db):
        store = CallSessionStore(test_db)
        stale = await store.create_call("AB123", "owner-1", "AB123")
        await _age_call(test_db, stale, 600)
        fresh = await store.create_call("AB123", "owner-1", "AB123")
        answered = await store.create_call("AB123", "owner-1", "AB123")
        await store.transition(answered.id, CallStatus.ACCEPTED)
        await _age_call(test_db, answered, 600)

        expired = await store.expire_stale_ringing(cutoff=datetime.utcnow() - timedelta(seconds=120))

        assert expired == [stale.id]
        assert (await store.get_call(stale.id)).status == "timeout"
        assert (await store.get_call(fresh.id)).status == "ringing"
        assert (await store.get_call(answered.id)).status == "accepted"


class TestCallSessionManager:
    """Test call session manager."""

    @pytest.mark.asyncio
    async def test_start_call_uses_canonical_plate_as_channel(self, test_db):
        await VehiclePersistenceService(test_db).register_vehicle("AB123", "owner-1")
        manager = CallSessionManager(test_db)

        call = await manager.start_call(" ab 123 ", via="qr")

        assert call.channel == "AB123"
        assert call.plate == "AB123"
        assert call.owner_id == "owner-1"
        assert call.status == "ringing"
        assert call.caller_info == {"via": "qr"}

    @pytest.mark.asyncio
    async def test_start_call_keeps_caller_info(self, test_db):
        await VehiclePersistenceService(test_db).register_vehicle("AB123", "owner-1")
        manager = CallSessionManager(test_db)

        call = await manager.start_call("AB123", caller_info={"note": "blocking my car"})

        assert call.caller_info == {"note": "blocking my car"}

    @pytest.mark.asyncio
    async def test_start_call_unknown_plate_writes_nothing(self, test_db, hub):
        manager = CallSessionManager(test_db, hub)

        async with hub.subscribe("owner-1") as queue:
            with pytest.raises(PlateNotFoundError):
                await manager.start_call("ZZ999")
            assert queue.empty()

    @pytest.mark.asyncio
    async def test_get_call_not_found(self, test_db):
        manager = CallSessionManager(test_db)

        with pytest.raises(CallNotFoundError):
            await manager.get_call("missing-id")

    @pytest.mark.asyncio
    async def test_fresh_ringing_excludes_stale(self, test_db):
        await VehiclePersistenceService(test_db).register_vehicle("AB123", "owner-1")
        manager = CallSessionManager(test_db, staleness=timedelta(seconds=120))
        call = await manager.start_call("AB123")
        await _age_call(test_db, call, 300)

        assert await manager.get_fresh_ringing("owner-1") is None

    @pytest.mark.asyncio
    async def test_expire_stale_calls(self, test_db):
        await VehiclePersistenceService(test_db).register_vehicle("AB123", "owner-1")
        manager = CallSessionManager(test_db)
        call = await manager.start_call("AB123")
        await _age_call(test_db, call, 300)

        assert await manager.expire_stale_calls() == 1
        assert await manager.expire_stale_calls() == 0


class TestRingingSweeper:
    """Test the background expiry pass."""

    @pytest.mark.asyncio
    async def test_sweep_once_times_out_stale_calls(self, test_db, test_session_factory, hub):
        store = CallSessionStore(test_db)
        stale = await store.create_call("AB123", "owner-1", "AB123")
        await _age_call(test_db, stale, 600)

        async with hub.subscribe("owner-1") as queue:
            count = await sweep_once(test_session_factory, hub)
            event = queue.get_nowait()

        assert count == 1
        assert event.type == "UPDATE"
        assert event.call.status == CallStatus.TIMEOUT
        assert (await store.get_call(stale.id)).status == "timeout"
