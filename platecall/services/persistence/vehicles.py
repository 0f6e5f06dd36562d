"""Vehicle directory persistence service."""
import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from platecall.core.errors import PersistenceError
from platecall.db.models import Vehicle

logger = logging.getLogger(__name__)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input only matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class VehiclePersistenceService:
    """Reads and registers vehicles."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _first(self, statement) -> Optional[Vehicle]:
        try:
            result = await self.db.execute(statement.limit(1))
        except SQLAlchemyError as e:
            logger.error(f"[VEHICLES] Lookup failed: {e}", exc_info=True)
            raise PersistenceError(f"DB error: {e}") from e
        return result.scalars().first()

    async def find_active_exact(self, plate: str) -> Optional[Vehicle]:
        """Exact plate match among active vehicles."""
        return await self._first(
            select(Vehicle).where(Vehicle.plate == plate, Vehicle.active.is_(True))
        )

    async def find_active_case_insensitive(self, plate: str) -> Optional[Vehicle]:
        """Case-insensitive plate equality among active vehicles."""
        return await self._first(
            select(Vehicle).where(
                func.upper(Vehicle.plate) == plate.upper(),
                Vehicle.active.is_(True),
            )
        )

    async def find_active_containing(self, plate: str, limit: int = 3) -> List[Vehicle]:
        """Active vehicles whose plate contains ``plate``, case-insensitively."""
        pattern = f"%{escape_like(plate)}%"
        try:
            result = await self.db.execute(
                select(Vehicle)
                .where(
                    Vehicle.plate.ilike(pattern, escape="\\"),
                    Vehicle.active.is_(True),
                )
                .order_by(Vehicle.id)
                .limit(limit)
            )
        except SQLAlchemyError as e:
            logger.error(f"[VEHICLES] Contains lookup failed: {e}", exc_info=True)
            raise PersistenceError(f"DB error: {e}") from e
        return list(result.scalars().all())

    async def find_any(self, plate: str) -> Optional[Vehicle]:
        """Case-insensitive plate equality, ignoring the active flag."""
        return await self._first(
            select(Vehicle).where(func.upper(Vehicle.plate) == plate.upper())
        )

    async def get_by_plate(self, plate: str) -> Optional[Vehicle]:
        """Get a vehicle by its canonical plate."""
        return await self._first(select(Vehicle).where(Vehicle.plate == plate))

    async def register_vehicle(
        self, plate: str, owner_id: Optional[str], active: bool = True
    ) -> Vehicle:
        """Create a vehicle or update the owner and flag of an existing one."""
        vehicle = await self.get_by_plate(plate)
        if vehicle is None:
            vehicle = Vehicle(plate=plate, owner_id=owner_id, active=active)
            self.db.add(vehicle)
        else:
            vehicle.owner_id = owner_id
            vehicle.active = active
        try:
            await self.db.commit()
            await self.db.refresh(vehicle)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[VEHICLES] Register failed for {plate}: {e}", exc_info=True)
            raise PersistenceError(f"Insert error: {e}") from e
        return vehicle

    async def set_active(self, plate: str, active: bool) -> Optional[Vehicle]:
        """Toggle the activation flag."""
        vehicle = await self.get_by_plate(plate)
        if vehicle:
            vehicle.active = active
            try:
                await self.db.commit()
                await self.db.refresh(vehicle)
            except SQLAlchemyError as e:
                await self.db.rollback()
                raise PersistenceError(f"Update error: {e}") from e
        return vehicle
