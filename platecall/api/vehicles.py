"""Vehicle registration endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from platecall.core.dependencies import get_vehicle_service
from platecall.core.errors import MissingPlateError, VehicleNotFoundError
from platecall.services.persistence.vehicles import VehiclePersistenceService
from platecall.services.plates.resolver import normalize_plate

router = APIRouter()
logger = logging.getLogger(__name__)


class VehicleRequest(BaseModel):
    """Vehicle registration request model."""
    plate: Optional[str] = None
    owner_id: Optional[str] = None
    active: bool = True


class VehicleActiveRequest(BaseModel):
    """Activation toggle request model."""
    active: bool


class VehicleResponse(BaseModel):
    """Vehicle response model."""
    plate: str
    owner_id: Optional[str] = None
    active: bool

    class Config:
        from_attributes = True


@router.post("/api/vehicles")
async def register_vehicle(
    body: VehicleRequest,
    vehicles: VehiclePersistenceService = Depends(get_vehicle_service),
):
    """Register a plate, or update the owner and flag of an existing one."""
    plate = normalize_plate(body.plate)
    if not plate:
        raise MissingPlateError("Missing plate")
    vehicle = await vehicles.register_vehicle(plate, body.owner_id, active=body.active)
    logger.info(f"[VEHICLES] Registered {plate} (owner {body.owner_id}, active {body.active})")
    return {"ok": True, "vehicle": VehicleResponse.model_validate(vehicle)}


@router.patch("/api/vehicles/{plate}")
async def set_vehicle_active(
    plate: str,
    body: VehicleActiveRequest,
    vehicles: VehiclePersistenceService = Depends(get_vehicle_service),
):
    """Enable or disable calls to a vehicle."""
    canonical = normalize_plate(plate)
    vehicle = await vehicles.set_active(canonical, body.active)
    if vehicle is None:
        raise VehicleNotFoundError(f'Vehicle "{canonical}" not found', plate=canonical)
    logger.info(f"[VEHICLES] {canonical} active={body.active}")
    return {"ok": True, "vehicle": VehicleResponse.model_validate(vehicle)}
