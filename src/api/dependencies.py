"""FastAPI dependency injection helpers."""

from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.exceptions import Unauthenticated
from src.domain.timeutils import utcnow
from src.infrastructure.database import async_session_factory
from src.infrastructure.notifier import LifecycleNotifier, database_notifier
from src.services.booking_service import BookingService
from src.services.ride_service import RideService


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_notifier() -> LifecycleNotifier:
    return database_notifier(async_session_factory)


def get_clock() -> Callable[[], datetime]:
    return utcnow


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None),
) -> int:
    """Caller identity as resolved by the upstream auth gateway."""
    if not x_user_id:
        raise Unauthenticated("Unauthorized")
    try:
        return int(x_user_id)
    except ValueError:
        raise Unauthenticated("Malformed X-User-Id header") from None


def get_booking_service(
    db: AsyncSession = Depends(get_db),
    notifier: LifecycleNotifier = Depends(get_notifier),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BookingService:
    return BookingService(db, notifier, clock=clock)


def get_ride_service(
    db: AsyncSession = Depends(get_db),
    notifier: LifecycleNotifier = Depends(get_notifier),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> RideService:
    return RideService(db, notifier, clock=clock)
