"""Database models."""
import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CallStatus(str, enum.Enum):
    """Lifecycle states of a call session row."""

    RINGING = "ringing"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    TIMEOUT = "timeout"
    ENDED = "ended"


TERMINAL_STATUSES = frozenset({CallStatus.DECLINED, CallStatus.TIMEOUT, CallStatus.ENDED})


def _new_call_id() -> str:
    return str(uuid.uuid4())


class Vehicle(Base):
    """Registered vehicle, looked up by canonical plate."""

    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    plate = Column(String, unique=True, index=True, nullable=False)
    owner_id = Column(String, index=True, nullable=True)  # null while partially configured
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class CallSession(Base):
    """One call attempt; status and timestamps are the audit trail."""

    __tablename__ = "call_sessions"

    id = Column(String(36), primary_key=True, default=_new_call_id)
    plate = Column(String, nullable=False)
    owner_id = Column(String, index=True, nullable=False)
    channel = Column(String, index=True, nullable=False)
    status = Column(String, default=CallStatus.RINGING.value, index=True, nullable=False)
    caller_info = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True, nullable=False)
    accepted_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
