"""
Inventory Ledger -- the only writer of ``rides.seats_available``.

Each adjustment is a single conditional ``UPDATE`` expressed as a delta
against the stored value::

    UPDATE rides SET seats_available = seats_available - 1
     WHERE id = :ride_id AND seats_available > 0

so two transactions racing for the last seat cannot both win, whatever
they read beforehand.  A zero rowcount means the guard rejected the
change.  Callers run these inside the same transaction as the booking
status write.
"""

from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import RideModel
from src.domain.exceptions import LedgerIntegrityError, NoSeatsAvailable

logger = logging.getLogger(__name__)


class SeatLedger:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _apply(self, ride: RideModel, delta: int, guard) -> bool:
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride.id, guard)
            .values(seats_available=RideModel.seats_available + delta)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        await self.session.refresh(ride, attribute_names=["seats_available"])
        return True

    async def reserve_seat(self, ride: RideModel) -> None:
        """Take one seat or raise ``NoSeatsAvailable``."""
        if not await self._apply(ride, -1, RideModel.seats_available > 0):
            logger.warning("Seat reservation rejected for ride %s: sold out", ride.id)
            raise NoSeatsAvailable("No seats available")

    async def release_seat(self, ride: RideModel) -> None:
        """Give one seat back.  Never pushes past ``seats_total``."""
        ok = await self._apply(
            ride, 1, RideModel.seats_available < RideModel.seats_total
        )
        if not ok:
            logger.error("Seat release for ride %s found a full inventory", ride.id)
            raise LedgerIntegrityError(
                f"Ride {ride.id} has no reserved seat to release"
            )

    async def restore_all(self, ride: RideModel) -> None:
        """Reset the inventory to full; used when the whole ride is cancelled."""
        await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride.id)
            .values(seats_available=RideModel.seats_total)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(ride, attribute_names=["seats_available"])
