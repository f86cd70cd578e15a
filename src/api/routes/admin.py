"""
Admin / observability endpoints
===============================

GET /api/v1/admin/rides/{ride_id}/ledger -- seat-conservation audit for one ride
GET /api/v1/admin/health                 -- simple health check
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db
from src.api.middleware import limiter
from src.api.schemas import HealthResponse, LedgerAuditResponse
from src.config import settings
from src.domain.exceptions import NotFound
from src.infrastructure.repositories import BookingRepository, RideRepository

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/rides/{ride_id}/ledger",
    response_model=LedgerAuditResponse,
    summary="Check seats_available + accepted bookings == seats_total",
)
@limiter.limit(settings.rate_limit)
async def ledger_audit(
    request: Request,
    ride_id: int,
    db: AsyncSession = Depends(get_db),
):
    ride = await RideRepository(db).get_by_id(ride_id)
    if not ride:
        raise NotFound("Ride not found")
    accepted = await BookingRepository(db).count_accepted(ride.id)
    return LedgerAuditResponse(
        ride_id=ride.id,
        seats_total=ride.seats_total,
        seats_available=ride.seats_available,
        accepted_bookings=accepted,
        balanced=ride.seats_available + accepted == ride.seats_total,
    )


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
