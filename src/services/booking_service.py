"""
Booking lifecycle service.

Every public method is one atomic unit: the ride and then the booking are
locked, preconditions are checked against those locked rows, and the
status write, seat delta, optional review and ride-status flip commit
together.  Notices raised along the way are dispatched after commit.

    (new) --passenger--> PENDING --driver--> ACCEPTED --passenger--> COMPLETED
                            |  \\                 |
                            |   --driver--> DECLINED
                            ----passenger----> CANCELLED <----passenger
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings, settings as default_settings
from src.domain.authorization import authorize_booking_action, ensure_participant
from src.domain.cancellation import FullRefund, Settlement, settle_passenger_cancellation
from src.domain.entities import (
    ensure_ride_open,
    has_departed,
    occupies_seat,
    transition_booking,
    transition_ride,
)
from src.domain.enums import (
    UPDATABLE_BOOKING_STATUSES,
    BookingStatus,
    NotificationType,
    PaymentStatus,
    RideStatus,
)
from src.domain.exceptions import (
    DuplicateBooking,
    DuplicateReview,
    Forbidden,
    InvalidStatusValue,
    InvalidTransition,
    NoSeatsAvailable,
    NotFound,
    Unauthenticated,
    ValidationError,
)
from src.domain.review_window import (
    ensure_confirmable,
    validate_comment,
    validate_rating,
)
from src.domain.timeutils import utcnow
from src.infrastructure.database import unit_of_work
from src.infrastructure.ledger import SeatLedger
from src.infrastructure.models import BookingModel, ReviewModel, RideModel
from src.infrastructure.notifier import LifecycleNotifier, Outbox
from src.infrastructure.repositories import (
    BookingRepository,
    ReviewRepository,
    RideRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)


def apply_settlement(booking: BookingModel, settlement: Settlement) -> None:
    booking.payment_status = settlement.payment_status
    booking.refund_amount = settlement.refund_amount
    booking.driver_payout = settlement.driver_payout


def parse_booking_target(value: str) -> BookingStatus:
    try:
        target = BookingStatus(value)
    except ValueError:
        target = None
    if target not in UPDATABLE_BOOKING_STATUSES:
        raise InvalidStatusValue(
            "Invalid status. Must be 'accepted', 'declined' or 'cancelled'"
        )
    return target


class BookingService:
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
        self.reviews = ReviewRepository(session)
        self.users = UserRepository(session)
        self.ledger = SeatLedger(session)

    @property
    def confirmation_window(self) -> timedelta:
        return timedelta(hours=self.config.confirmation_window_hours)

    # ── CreateBooking ─────────────────────────────────────────────

    async def create_booking(
        self, ride_id: int, passenger_id: Optional[int], payment_confirmed: bool
    ) -> BookingModel:
        if passenger_id is None:
            raise Unauthenticated("Authentication required")

        now = self.clock()
        outbox = Outbox()
        async with unit_of_work(self.session):
            ride = await self._locked_ride(ride_id)
            if not payment_confirmed:
                raise ValidationError("Payment confirmation is required to book a seat")
            if RideStatus(ride.status) != RideStatus.UPCOMING:
                raise InvalidTransition(f"Ride is {RideStatus(ride.status).value}")
            if has_departed(ride.departure_at, now):
                raise InvalidTransition("This ride has already departed")
            if ride.driver_id == passenger_id:
                raise ValidationError("You cannot book your own ride")

            passenger = await self.users.get_by_id(passenger_id)
            if passenger is None:
                raise Unauthenticated("Unknown user")
            if self.config.require_verified_passenger and not passenger.university:
                raise Forbidden("Verify your university email before booking a ride")

            if await self.bookings.get_active_for_passenger(ride.id, passenger_id):
                raise DuplicateBooking("You have already requested a seat for this ride")
            if ride.seats_available <= 0:
                raise NoSeatsAvailable("No seats available")

            booking = BookingModel(
                ride_id=ride.id,
                passenger_id=passenger_id,
                status=BookingStatus.PENDING,
                payment_status=PaymentStatus.HELD,
                payment_amount=ride.price_per_seat,
                paid_at=now,
            )
            try:
                await self.bookings.create(booking)
            except IntegrityError as exc:
                raise DuplicateBooking(
                    "You have already requested a seat for this ride"
                ) from exc

            outbox.notify(
                ride.driver_id,
                NotificationType.BOOKING_REQUEST,
                "New Booking Request",
                f"{passenger.name} wants to join your ride from "
                f"{ride.origin} to {ride.destination}",
                ride_id=ride.id,
                booking_id=booking.id,
            )

        logger.info("Booking %s created for ride %s by user %s", booking.id, ride.id, passenger_id)
        await self.notifier.dispatch(outbox)
        return booking

    # ── UpdateBookingStatus ───────────────────────────────────────

    async def update_status(
        self, booking_id: int, actor_id: Optional[int], target_value: str
    ) -> BookingModel:
        if actor_id is None:
            raise Unauthenticated("Authentication required")
        target = parse_booking_target(target_value)

        now = self.clock()
        outbox = Outbox()
        async with unit_of_work(self.session):
            booking, ride = await self._locked_booking_and_ride(booking_id)
            authorize_booking_action(
                actor_id,
                driver_id=ride.driver_id,
                passenger_id=booking.passenger_id,
                target=target,
            )
            ensure_ride_open(ride)

            previous = BookingStatus(booking.status)
            transition_booking(booking, target)

            if target == BookingStatus.ACCEPTED:
                if has_departed(ride.departure_at, now):
                    raise InvalidTransition("This ride has already departed")
                if ride.seats_available <= 0:
                    raise NoSeatsAvailable("No seats available")
                # the ledger re-checks atomically; the read above is advisory
                await self.ledger.reserve_seat(ride)
                await self._on_accepted(booking, ride, outbox)
            elif target == BookingStatus.DECLINED:
                apply_settlement(booking, FullRefund().settle(booking.payment_amount))
                await self._on_declined(booking, ride, outbox)
            else:
                was_accepted = occupies_seat(previous)
                # a pending request holds no seat and may be withdrawn at any time
                if was_accepted and has_departed(ride.departure_at, now):
                    raise InvalidTransition("Cannot cancel after the ride has departed")
                if was_accepted:
                    await self.ledger.release_seat(ride)
                apply_settlement(
                    booking,
                    settle_passenger_cancellation(
                        booking.payment_amount,
                        was_accepted=was_accepted,
                        departure_at=ride.departure_at,
                        now=now,
                    ),
                )
                await self._on_cancelled(booking, ride, outbox, was_accepted)

        logger.info(
            "Booking %s: %s -> %s by user %s (ride %s, seats left %s)",
            booking.id,
            previous.value,
            target.value,
            actor_id,
            ride.id,
            ride.seats_available,
        )
        await self.notifier.dispatch(outbox)
        return booking

    async def _on_accepted(self, booking, ride, outbox: Outbox) -> None:
        passenger = await self.users.get_by_id(booking.passenger_id)
        driver = await self.users.get_by_id(ride.driver_id)
        outbox.system_message(ride.id, f"{_name(passenger)} joined the ride")
        outbox.notify(
            booking.passenger_id,
            NotificationType.BOOKING_ACCEPTED,
            "Booking Accepted!",
            f"{_name(driver, 'Driver')} accepted your request for the ride from "
            f"{ride.origin} to {ride.destination}",
            ride_id=ride.id,
            booking_id=booking.id,
        )

    async def _on_declined(self, booking, ride, outbox: Outbox) -> None:
        driver = await self.users.get_by_id(ride.driver_id)
        outbox.notify(
            booking.passenger_id,
            NotificationType.BOOKING_DECLINED,
            "Booking Declined",
            f"{_name(driver, 'Driver')} declined your request for the ride from "
            f"{ride.origin} to {ride.destination}",
            ride_id=ride.id,
            booking_id=booking.id,
        )

    async def _on_cancelled(self, booking, ride, outbox: Outbox, was_accepted: bool) -> None:
        passenger = await self.users.get_by_id(booking.passenger_id)
        if was_accepted:
            outbox.system_message(ride.id, f"{_name(passenger)} left the ride")
        outbox.notify(
            ride.driver_id,
            NotificationType.BOOKING_CANCELLED,
            "Booking Cancelled",
            f"{_name(passenger)} cancelled their booking for your ride from "
            f"{ride.origin} to {ride.destination}",
            ride_id=ride.id,
            booking_id=booking.id,
        )

    # ── ConfirmBooking ────────────────────────────────────────────

    async def confirm(
        self,
        booking_id: int,
        passenger_id: Optional[int],
        rating: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> tuple[BookingModel, Optional[ReviewModel]]:
        if passenger_id is None:
            raise Unauthenticated("Authentication required")

        now = self.clock()
        async with unit_of_work(self.session):
            booking, ride = await self._locked_booking_and_ride(booking_id)
            authorize_booking_action(
                passenger_id,
                driver_id=ride.driver_id,
                passenger_id=booking.passenger_id,
                target=BookingStatus.COMPLETED,
            )
            ensure_confirmable(
                booking_status=booking.status,
                confirmed_at=booking.confirmed_at,
                ride_status=ride.status,
                departure_at=ride.departure_at,
                confirm_deadline=booking.confirm_deadline,
                now=now,
                window=self.confirmation_window,
            )
            rating = validate_rating(rating)
            comment = validate_comment(comment, self.config.max_comment_length)

            transition_booking(booking, BookingStatus.COMPLETED)
            booking.confirmed_at = now
            await self.ledger.release_seat(ride)
            booking.payment_status = PaymentStatus.RELEASED
            booking.driver_payout = booking.payment_amount
            booking.refund_amount = 0.0

            review = None
            if rating is not None:
                existing = await self.reviews.get_by_booking_and_reviewer(
                    booking.id, passenger_id
                )
                if existing is None:
                    review = await self._create_review(
                        booking, passenger_id, ride.driver_id, rating, comment
                    )

            await self.complete_ride_if_settled(ride, now)

        logger.info(
            "Booking %s confirmed by passenger %s; payment released%s",
            booking.id,
            passenger_id,
            f", rated {review.rating}" if review else "",
        )
        return booking, review

    async def complete_ride_if_settled(self, ride: RideModel, now: datetime) -> bool:
        """Flip an upcoming ride to completed once no booking is still accepted."""
        if RideStatus(ride.status) != RideStatus.UPCOMING:
            return False
        if await self.bookings.count_accepted(ride.id) > 0:
            return False
        transition_ride(ride, RideStatus.COMPLETED)
        ride.completed_at = now
        logger.info("Ride %s completed: no accepted bookings remain", ride.id)
        return True

    # ── RatePassenger ─────────────────────────────────────────────

    async def rate_passenger(
        self,
        booking_id: int,
        driver_id: Optional[int],
        rating: Optional[int],
        comment: Optional[str] = None,
    ) -> ReviewModel:
        if driver_id is None:
            raise Unauthenticated("Authentication required")

        async with unit_of_work(self.session):
            booking, ride = await self._locked_booking_and_ride(booking_id)
            if ride.driver_id != driver_id:
                raise Forbidden("Only the driver can rate passengers")
            rating = validate_rating(rating, required=True)
            comment = validate_comment(comment, self.config.max_comment_length)
            if BookingStatus(booking.status) not in (
                BookingStatus.ACCEPTED,
                BookingStatus.COMPLETED,
            ):
                raise InvalidTransition(
                    "Passengers can only be rated on accepted or completed bookings"
                )
            if await self.reviews.get_by_booking_and_reviewer(booking.id, driver_id):
                raise DuplicateReview("You have already rated this passenger")
            review = await self._create_review(
                booking, driver_id, booking.passenger_id, rating, comment
            )

        logger.info("Driver %s rated passenger %s on booking %s", driver_id, booking.passenger_id, booking.id)
        return review

    async def _create_review(
        self, booking, reviewer_id: int, reviewee_id: int, rating: int, comment
    ) -> ReviewModel:
        review = ReviewModel(
            booking_id=booking.id,
            reviewer_id=reviewer_id,
            reviewee_id=reviewee_id,
            rating=rating,
            comment=comment,
        )
        try:
            await self.reviews.create(review)
        except IntegrityError as exc:
            raise DuplicateReview("A review for this booking already exists") from exc

        reviewee = await self.users.get_by_id(reviewee_id)
        if reviewee is not None:
            reviewee.rating, reviewee.rating_count = await self.reviews.rating_summary(
                reviewee_id
            )
        return review

    # ── Reads ─────────────────────────────────────────────────────

    async def get_booking(
        self, booking_id: int, actor_id: Optional[int]
    ) -> tuple[BookingModel, RideModel]:
        if actor_id is None:
            raise Unauthenticated("Authentication required")
        booking = await self.bookings.get_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        ride = await self.rides.get_by_id(booking.ride_id)
        ensure_participant(
            actor_id, driver_id=ride.driver_id, passenger_id=booking.passenger_id
        )
        return booking, ride

    async def pending_confirmations(
        self, passenger_id: Optional[int]
    ) -> list[tuple[BookingModel, RideModel]]:
        if passenger_id is None:
            raise Unauthenticated("Authentication required")
        return await self.bookings.get_pending_confirmation(passenger_id, self.clock())

    # ── Helpers ───────────────────────────────────────────────────

    async def _locked_booking_and_ride(
        self, booking_id: int
    ) -> tuple[BookingModel, RideModel]:
        """Lock the ride first, then the booking (see repositories lock order)."""
        booking = await self.bookings.get_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        ride = await self._locked_ride(booking.ride_id)
        booking = await self.bookings.get_for_update(booking_id)
        if booking is None or booking.ride_id != ride.id:
            raise NotFound("Booking not found")
        return booking, ride

    async def _locked_ride(self, ride_id: int) -> RideModel:
        ride = await self.rides.get_for_update(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        return ride


def _name(user, fallback: str = "A passenger") -> str:
    return user.name if user is not None and user.name else fallback
