"""
Ride lifecycle service: publish, mark complete, cancel.

Completing or cancelling a ride cascades onto its bookings in the same
transaction:

* complete -- accepted bookings get a confirmation deadline, pending
  requests are declined and refunded.
* cancel   -- every pending / accepted booking is cancelled with a full
  refund and the seat inventory is restored to ``seats_total``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings, settings as default_settings
from src.domain.cancellation import FullRefund
from src.domain.entities import transition_booking, transition_ride
from src.domain.enums import (
    ACTIVE_BOOKING_STATUSES,
    BookingStatus,
    NotificationType,
    RideStatus,
)
from src.domain.exceptions import (
    Forbidden,
    InvalidStatusValue,
    NotFound,
    Unauthenticated,
    ValidationError,
)
from src.domain.timeutils import as_utc, utcnow
from src.infrastructure.database import unit_of_work
from src.infrastructure.ledger import SeatLedger
from src.infrastructure.models import RideModel
from src.infrastructure.notifier import LifecycleNotifier, Outbox
from src.infrastructure.repositories import (
    BookingRepository,
    RideRepository,
    UserRepository,
)
from src.services.booking_service import apply_settlement

logger = logging.getLogger(__name__)


class RideService:
    def __init__(
        self,
        session: AsyncSession,
        notifier: LifecycleNotifier,
        *,
        clock: Callable[[], datetime] = utcnow,
        config: Settings = default_settings,
    ):
        self.session = session
        self.notifier = notifier
        self.clock = clock
        self.config = config
        self.rides = RideRepository(session)
        self.bookings = BookingRepository(session)
        self.users = UserRepository(session)
        self.ledger = SeatLedger(session)

    async def create_ride(
        self,
        driver_id: Optional[int],
        *,
        origin: str,
        destination: str,
        departure_at: datetime,
        price_per_seat: float,
        seats_total: int,
        notes: Optional[str] = None,
    ) -> RideModel:
        if driver_id is None:
            raise Unauthenticated("Authentication required")

        origin, destination = origin.strip(), destination.strip()
        if not origin or not destination:
            raise ValidationError("Origin and destination are required")
        if price_per_seat < 0:
            raise ValidationError("Price must be positive")
        if not 1 <= seats_total <= self.config.max_seats_per_ride:
            raise ValidationError(
                f"Seats must be between 1 and {self.config.max_seats_per_ride}"
            )
        departure_at = as_utc(departure_at)
        if departure_at <= self.clock():
            raise ValidationError("Ride date must be in the future")

        async with unit_of_work(self.session):
            if await self.users.get_by_id(driver_id) is None:
                raise Unauthenticated("Unknown user")
            ride = await self.rides.create(
                RideModel(
                    driver_id=driver_id,
                    origin=origin,
                    destination=destination,
                    departure_at=departure_at,
                    price_per_seat=round(price_per_seat, 2),
                    seats_total=seats_total,
                    seats_available=seats_total,
                    status=RideStatus.UPCOMING,
                    notes=notes or None,
                )
            )

        logger.info("Ride %s published by driver %s (%d seats)", ride.id, driver_id, seats_total)
        return ride

    async def get_ride(self, ride_id: int) -> tuple[RideModel, list[int]]:
        """Ride plus the ids of its accepted passengers (chat participants)."""
        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        accepted = await self.bookings.get_for_ride(ride.id, {BookingStatus.ACCEPTED})
        return ride, [b.passenger_id for b in accepted]

    async def update_status(
        self, ride_id: int, actor_id: Optional[int], target_value: str
    ) -> RideModel:
        if target_value == RideStatus.COMPLETED.value:
            return await self.complete_ride(ride_id, actor_id)
        if target_value == RideStatus.CANCELLED.value:
            return await self.cancel_ride(ride_id, actor_id)
        raise InvalidStatusValue("Invalid status. Must be 'completed' or 'cancelled'")

    # ── Mark complete ─────────────────────────────────────────────

    async def complete_ride(self, ride_id: int, driver_id: Optional[int]) -> RideModel:
        now = self.clock()
        outbox = Outbox()
        async with unit_of_work(self.session):
            ride = await self._locked_ride_for_driver(ride_id, driver_id)
            transition_ride(ride, RideStatus.COMPLETED)
            ride.completed_at = now
            driver = await self.users.get_by_id(ride.driver_id)
            driver_name = driver.name if driver and driver.name else "Driver"

            deadline = now + timedelta(hours=self.config.confirmation_window_hours)
            accepted = await self.bookings.get_for_ride(
                ride.id, {BookingStatus.ACCEPTED}, for_update=True
            )
            for booking in accepted:
                booking.confirm_deadline = deadline
                outbox.notify(
                    booking.passenger_id,
                    NotificationType.RIDE_COMPLETED,
                    "Ride Completed - Please Confirm",
                    f"{driver_name} has marked your ride from {ride.origin} to "
                    f"{ride.destination} as complete. Please confirm and leave a review.",
                    ride_id=ride.id,
                    booking_id=booking.id,
                )
            await decline_pending(self.bookings, ride, outbox, driver_name)
            outbox.system_message(
                ride.id,
                f"{driver_name} has marked this ride as complete. "
                "Please confirm and leave a review!",
            )

        logger.info(
            "Ride %s marked complete by driver %s; %d bookings awaiting confirmation",
            ride.id,
            ride.driver_id,
            len(accepted),
        )
        await self.notifier.dispatch(outbox)
        return ride

    # ── Cancel ────────────────────────────────────────────────────

    async def cancel_ride(self, ride_id: int, driver_id: Optional[int]) -> RideModel:
        outbox = Outbox()
        async with unit_of_work(self.session):
            ride = await self._locked_ride_for_driver(ride_id, driver_id)
            transition_ride(ride, RideStatus.CANCELLED)
            driver = await self.users.get_by_id(ride.driver_id)
            driver_name = driver.name if driver and driver.name else "Driver"

            active = await self.bookings.get_for_ride(
                ride.id, ACTIVE_BOOKING_STATUSES, for_update=True
            )
            for booking in active:
                transition_booking(booking, BookingStatus.CANCELLED)
                apply_settlement(booking, FullRefund().settle(booking.payment_amount))
                outbox.notify(
                    booking.passenger_id,
                    NotificationType.RIDE_CANCELLED,
                    "Ride Cancelled",
                    f"{driver_name} cancelled the ride from {ride.origin} to "
                    f"{ride.destination}. Your payment has been refunded.",
                    ride_id=ride.id,
                    booking_id=booking.id,
                )
            await self.ledger.restore_all(ride)
            outbox.system_message(ride.id, f"{driver_name} cancelled this ride")

        logger.info(
            "Ride %s cancelled by driver %s; %d bookings refunded",
            ride.id,
            ride.driver_id,
            len(active),
        )
        await self.notifier.dispatch(outbox)
        return ride

    async def _locked_ride_for_driver(
        self, ride_id: int, driver_id: Optional[int]
    ) -> RideModel:
        if driver_id is None:
            raise Unauthenticated("Authentication required")
        ride = await self.rides.get_for_update(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        if ride.driver_id != driver_id:
            raise Forbidden("Only the driver can update this ride")
        return ride


async def decline_pending(
    bookings: BookingRepository, ride: RideModel, outbox: Outbox, driver_name: str
) -> int:
    """Decline and refund every request still pending on a finished ride."""
    pending = await bookings.get_for_ride(
        ride.id, {BookingStatus.PENDING}, for_update=True
    )
    for booking in pending:
        transition_booking(booking, BookingStatus.DECLINED)
        apply_settlement(booking, FullRefund().settle(booking.payment_amount))
        outbox.notify(
            booking.passenger_id,
            NotificationType.BOOKING_DECLINED,
            "Booking Declined",
            f"{driver_name}'s ride from {ride.origin} to {ride.destination} "
            "has finished before your request was accepted. You have been refunded.",
            ride_id=ride.id,
            booking_id=booking.id,
        )
    return len(pending)
