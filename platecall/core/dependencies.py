"""FastAPI dependencies."""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from platecall.core.config import settings
from platecall.db.database import get_db
from platecall.services.admission.service import AdmissionService
from platecall.services.call_session.manager import CallSessionManager
from platecall.services.notifications.hub import CallEventHub, call_event_hub
from platecall.services.persistence.vehicles import VehiclePersistenceService


def get_call_event_hub() -> CallEventHub:
    """Get the process-wide call event hub."""
    return call_event_hub


def get_session_manager(
    db: AsyncSession = Depends(get_db),
    hub: CallEventHub = Depends(get_call_event_hub),
) -> CallSessionManager:
    """Get call session manager."""
    return CallSessionManager(db, hub)


def get_vehicle_service(db: AsyncSession = Depends(get_db)) -> VehiclePersistenceService:
    return VehiclePersistenceService(db)


def get_admission_service(
    vehicles: VehiclePersistenceService = Depends(get_vehicle_service),
) -> AdmissionService:
    """Get admission service configured from settings."""
    return AdmissionService(
        vehicles,
        app_id=settings.agora_app_id,
        app_certificate=settings.agora_app_certificate,
        default_ttl_seconds=settings.token_default_ttl_seconds,
        max_ttl_seconds=settings.token_max_ttl_seconds,
    )
