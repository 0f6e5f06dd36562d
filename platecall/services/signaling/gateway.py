"""Backend operations the signaling engines depend on."""
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional

from platecall.db.models import CallStatus
from platecall.services.call_session.models import CallSessionView, TransitionResult
from platecall.services.media.base import MediaCredentials


class CallGateway(ABC):
    """Abstract base class for reaching the call session backend."""

    @abstractmethod
    async def start_call(
        self,
        plate: str,
        via: Optional[str] = None,
        caller_info: Optional[Dict[str, Any]] = None,
    ) -> CallSessionView:
        """Create a ringing session for ``plate``."""
        pass

    @abstractmethod
    async def get_fresh_ringing(self, owner_id: str) -> Optional[CallSessionView]:
        """Newest ringing session for the owner inside the staleness window."""
        pass

    @abstractmethod
    async def update_status(self, call_id: str, status: CallStatus) -> TransitionResult:
        """Write a status transition."""
        pass

    @abstractmethod
    async def issue_token(self, channel: str, role: str = "publisher") -> MediaCredentials:
        """Fetch admission credentials for ``channel``."""
        pass

    @abstractmethod
    def call_events(self, owner_id: str) -> AsyncIterator[CallSessionView]:
        """Rows inserted or updated for the owner, as pushed by the backend."""
        pass

