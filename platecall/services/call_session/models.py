"""Call session models."""
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel

from platecall.db.models import CallStatus


class CallSessionView(BaseModel):
    """A call session row as seen by clients and events."""

    id: str
    plate: str
    owner_id: str
    channel: str
    status: CallStatus
    caller_info: Optional[Dict[str, Any]] = None
    created_at: datetime
    accepted_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TransitionResult(BaseModel):
    """Outcome of a status write; ``applied`` is False when another write won."""

    call: CallSessionView
    applied: bool


class CallEvent(BaseModel):
    """Change notification for one call session row."""

    type: Literal["INSERT", "UPDATE"]
    call: CallSessionView
