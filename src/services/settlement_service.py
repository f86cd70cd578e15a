"""
Settlement sweep: the time-driven half of the lifecycle.

1. Accepted bookings whose confirmation deadline has passed are completed.
   Their seat leaves the ledger and the payment goes to the driver;
   ``confirmed_at`` stays empty since the passenger never confirmed.
2. Upcoming rides that have departed with no accepted booking left are
   completed; any request still pending on them is declined and refunded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings, settings as default_settings
from src.domain.entities import transition_booking, transition_ride
from src.domain.enums import BookingStatus, NotificationType, PaymentStatus, RideStatus
from src.domain.timeutils import utcnow
from src.infrastructure.database import unit_of_work
from src.infrastructure.ledger import SeatLedger
from src.infrastructure.notifier import LifecycleNotifier, Outbox
from src.infrastructure.repositories import BookingRepository, RideRepository, UserRepository
from src.services.ride_service import decline_pending

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    auto_released: int = 0
    rides_completed: int = 0


class SettlementService:
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

    async def sweep(self) -> SweepResult:
        now = self.clock()
        window = timedelta(hours=self.config.confirmation_window_hours)
        outbox = Outbox()

        async with unit_of_work(self.session):
            expired = await self.bookings.get_expired_confirmations_for_update(now, window)
            for booking, ride in expired:
                transition_booking(booking, BookingStatus.COMPLETED)
                await self.ledger.release_seat(ride)
                booking.payment_status = PaymentStatus.RELEASED
                booking.driver_payout = booking.payment_amount
                booking.refund_amount = 0.0
                outbox.notify(
                    booking.passenger_id,
                    NotificationType.BOOKING_AUTO_RELEASED,
                    "Confirmation Window Closed",
                    f"Your ride from {ride.origin} to {ride.destination} was "
                    "completed automatically and the payment released to the driver.",
                    ride_id=ride.id,
                    booking_id=booking.id,
                )
                outbox.notify(
                    ride.driver_id,
                    NotificationType.BOOKING_AUTO_RELEASED,
                    "Payment Released",
                    f"The payment for booking #{booking.id} on your ride from "
                    f"{ride.origin} to {ride.destination} has been released.",
                    ride_id=ride.id,
                    booking_id=booking.id,
                )

            completed = 0
            departed = await self.rides.get_departed_upcoming_for_update(now)
            for ride in departed:
                if await self.bookings.count_accepted(ride.id) > 0:
                    continue
                driver = await self.users.get_by_id(ride.driver_id)
                driver_name = driver.name if driver and driver.name else "Driver"
                await decline_pending(self.bookings, ride, outbox, driver_name)
                transition_ride(ride, RideStatus.COMPLETED)
                ride.completed_at = now
                completed += 1

        result = SweepResult(auto_released=len(expired), rides_completed=completed)
        if result.auto_released or result.rides_completed:
            logger.info(
                "Settlement sweep: %d bookings auto-released, %d rides completed",
                result.auto_released,
                result.rides_completed,
            )
        await self.notifier.dispatch(outbox)
        return result
