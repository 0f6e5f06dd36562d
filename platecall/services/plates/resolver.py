"""Plate normalization and resolution to a callable vehicle."""
import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from platecall.core.errors import (
    MissingPlateError,
    PlateNotFoundError,
    VehicleDisabledError,
    VehicleOwnerMissingError,
)
from platecall.db.models import Vehicle
from platecall.services.persistence.vehicles import VehiclePersistenceService

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

STAGE_EXACT = "exact"
STAGE_CASE_INSENSITIVE = "case_insensitive"
STAGE_CONTAINS = "contains"


def normalize_plate(raw: Optional[str]) -> str:
    """Uppercase and strip all whitespace. The result is the canonical plate."""
    return _WHITESPACE.sub("", raw or "").upper()


def pick_candidate(candidates: Sequence[Vehicle]) -> Optional[Vehicle]:
    """Choose among fuzzy matches.

    Active with an owner beats any with an owner, which beats the first row,
    so a half-configured vehicle never silently becomes the call target.
    """
    if not candidates:
        return None
    for vehicle in candidates:
        if vehicle.active and vehicle.owner_id:
            return vehicle
    for vehicle in candidates:
        if vehicle.owner_id:
            return vehicle
    return candidates[0]


@dataclass(frozen=True)
class ResolvedPlate:
    """A plate that resolved to an active, owned vehicle."""

    plate: str
    owner_id: str
    requested: str
    stage: str


class PlateResolver:
    """Maps a raw scanned or typed plate to exactly one active vehicle."""

    def __init__(self, vehicles: VehiclePersistenceService, candidate_limit: int = 3):
        self.vehicles = vehicles
        self.candidate_limit = candidate_limit

    async def resolve(self, raw_plate: Optional[str]) -> ResolvedPlate:
        plate = normalize_plate(raw_plate)
        if not plate:
            raise MissingPlateError("Missing plate")

        stage = STAGE_EXACT
        vehicle = await self.vehicles.find_active_exact(plate)

        if vehicle is None:
            stage = STAGE_CASE_INSENSITIVE
            vehicle = await self.vehicles.find_active_case_insensitive(plate)

        if vehicle is None:
            # A disabled vehicle with this exact plate must not fall through to a fuzzy match.
            disabled = await self.vehicles.find_any(plate)
            if disabled is not None and not disabled.active:
                raise VehicleDisabledError.for_plate(disabled.plate)

            stage = STAGE_CONTAINS
            candidates = await self.vehicles.find_active_containing(
                plate, limit=self.candidate_limit
            )
            if len(candidates) > 1:
                logger.info(
                    f"[PLATES] {len(candidates)} fuzzy candidates for {plate}: "
                    f"{[c.plate for c in candidates]}"
                )
            vehicle = pick_candidate(candidates)

        if vehicle is None:
            raise PlateNotFoundError.for_plate(raw_plate or "", plate)

        if not vehicle.owner_id:
            raise VehicleOwnerMissingError.for_plate(vehicle.plate)
        if not vehicle.active:
            raise VehicleDisabledError.for_plate(vehicle.plate)

        logger.debug(f"[PLATES] Resolved {plate} -> {vehicle.plate} via {stage}")
        return ResolvedPlate(
            plate=vehicle.plate,
            owner_id=vehicle.owner_id,
            requested=plate,
            stage=stage,
        )
