"""Idempotent reconciliation of ringing sessions delivered by push and poll."""
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Callable, Optional

from platecall.db.models import CallStatus
from platecall.services.call_session.models import CallSessionView

RINGING_STALENESS_SECONDS = 120


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class RingingReconciler:
    """Decides whether an incoming row should be shown as a new ringing call.

    Push and poll are treated as one at-least-once source: the same row may
    arrive twice, late, or out of order. A row is admitted only if it is
    ringing, fresh, not the session already tracked and not one this client
    has already closed.
    """

    def __init__(
        self,
        staleness_seconds: float = RINGING_STALENESS_SECONDS,
        clock: Callable[[], datetime] = datetime.utcnow,
        closed_history: int = 256,
    ):
        self.staleness_seconds = staleness_seconds
        self.clock = clock
        self.closed_history = closed_history
        self.current_id: Optional[str] = None
        self._closed: "OrderedDict[str, None]" = OrderedDict()

    def age_seconds(self, call: CallSessionView) -> float:
        return (self.clock() - _as_naive_utc(call.created_at)).total_seconds()

    def is_fresh(self, call: CallSessionView) -> bool:
        return self.age_seconds(call) < self.staleness_seconds

    def was_closed(self, call_id: str) -> bool:
        return call_id in self._closed

    def admit(self, call: CallSessionView) -> bool:
        """Track ``call`` and return True if it should start ringing."""
        if call.status != CallStatus.RINGING:
            return False
        if not self.is_fresh(call):
            return False
        if call.id == self.current_id or call.id in self._closed:
            return False
        self.current_id = call.id
        return True

    def release(self, call_id: Optional[str], closed: bool = True) -> None:
        """Stop tracking ``call_id``; closed ids are never admitted again."""
        if call_id is not None and closed:
            self._closed[call_id] = None
            while len(self._closed) > self.closed_history:
                self._closed.popitem(last=False)
        if call_id is None or call_id == self.current_id:
            self.current_id = None
