"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  ``*_for_update`` variants take row locks
(``SELECT ... FOR UPDATE``) so that precondition checks and the writes
that depend on them happen under the same lock.

Lock order: a ride row is always locked before any of its booking rows.
Callers that start from a booking id read its ``ride_id`` unlocked, lock
the ride, then lock the booking.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import BookingModel, ReviewModel, RideModel, UserModel
from src.domain.enums import ACTIVE_BOOKING_STATUSES, BookingStatus, RideStatus


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, ride: RideModel) -> RideModel:
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def get_by_id(self, ride_id: int) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id)

    async def get_for_update(self, ride_id: int) -> Optional[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.id == ride_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_departed_upcoming_for_update(self, now: datetime) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(
                RideModel.status == RideStatus.UPCOMING,
                RideModel.departure_at <= now,
            )
            .order_by(RideModel.departure_at)
            .with_for_update(skip_locked=True)
        )
        return list(result.scalars().all())


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: BookingModel) -> BookingModel:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_by_id(self, booking_id: int) -> Optional[BookingModel]:
        return await self.session.get(BookingModel, booking_id)

    async def get_for_update(self, booking_id: int) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_active_for_passenger(
        self, ride_id: int, passenger_id: int
    ) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel).where(
                BookingModel.ride_id == ride_id,
                BookingModel.passenger_id == passenger_id,
                BookingModel.status.in_(ACTIVE_BOOKING_STATUSES),
            )
        )
        return result.scalars().first()

    async def get_for_ride(
        self,
        ride_id: int,
        statuses: Optional[set[BookingStatus] | frozenset[BookingStatus]] = None,
        *,
        for_update: bool = False,
    ) -> list[BookingModel]:
        query = (
            select(BookingModel)
            .where(BookingModel.ride_id == ride_id)
            .order_by(BookingModel.id)
        )
        if statuses:
            query = query.where(BookingModel.status.in_(statuses))
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_accepted(self, ride_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(BookingModel)
            .where(
                BookingModel.ride_id == ride_id,
                BookingModel.status == BookingStatus.ACCEPTED,
            )
        )
        return result.scalar() or 0

    async def get_pending_confirmation(
        self, passenger_id: int, now: datetime
    ) -> list[tuple[BookingModel, RideModel]]:
        result = await self.session.execute(
            select(BookingModel, RideModel)
            .join(RideModel, RideModel.id == BookingModel.ride_id)
            .where(
                BookingModel.passenger_id == passenger_id,
                BookingModel.status == BookingStatus.ACCEPTED,
                BookingModel.confirmed_at.is_(None),
                RideModel.departure_at < now,
                RideModel.status != RideStatus.CANCELLED,
            )
            .order_by(RideModel.departure_at.desc())
        )
        return [(b, r) for b, r in result.all()]

    async def get_expired_confirmations_for_update(
        self, now: datetime, window: timedelta
    ) -> list[tuple[BookingModel, RideModel]]:
        """Accepted bookings whose confirmation deadline has passed.

        Both the ride and the booking rows are locked; rows held by a request
        in flight are skipped until the next sweep.
        """
        result = await self.session.execute(
            select(BookingModel, RideModel)
            .join(RideModel, RideModel.id == BookingModel.ride_id)
            .where(
                BookingModel.status == BookingStatus.ACCEPTED,
                BookingModel.confirmed_at.is_(None),
                RideModel.status != RideStatus.CANCELLED,
                or_(
                    and_(
                        BookingModel.confirm_deadline.is_not(None),
                        BookingModel.confirm_deadline < now,
                    ),
                    and_(
                        BookingModel.confirm_deadline.is_(None),
                        RideModel.departure_at < now - window,
                    ),
                ),
            )
            .order_by(BookingModel.id)
            .with_for_update(of=[RideModel, BookingModel], skip_locked=True)
        )
        return [(b, r) for b, r in result.all()]


class ReviewRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, review: ReviewModel) -> ReviewModel:
        self.session.add(review)
        await self.session.flush()
        return review

    async def get_by_booking_and_reviewer(
        self, booking_id: int, reviewer_id: int
    ) -> Optional[ReviewModel]:
        result = await self.session.execute(
            select(ReviewModel).where(
                ReviewModel.booking_id == booking_id,
                ReviewModel.reviewer_id == reviewer_id,
            )
        )
        return result.scalar_one_or_none()

    async def rating_summary(self, reviewee_id: int) -> tuple[Optional[float], int]:
        result = await self.session.execute(
            select(func.avg(ReviewModel.rating), func.count(ReviewModel.id)).where(
                ReviewModel.reviewee_id == reviewee_id
            )
        )
        avg, count = result.one()
        return (round(float(avg), 2) if avg is not None else None), count or 0


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)
