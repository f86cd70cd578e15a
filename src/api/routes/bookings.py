"""
Booking endpoints
=================

GET   /api/v1/bookings/pending-confirmation     -- caller's rides awaiting confirmation
GET   /api/v1/bookings/{booking_id}             -- booking with review countdown
PATCH /api/v1/bookings/{booking_id}             -- accept / decline (driver), cancel (passenger)
POST  /api/v1/bookings/{booking_id}/confirm     -- passenger confirms, optionally rates driver
POST  /api/v1/bookings/{booking_id}/rate-passenger -- driver rates passenger
"""

from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_booking_service, get_clock, get_current_user_id
from src.api.middleware import limiter
from src.api.schemas import (
    BookingDetailResponse,
    BookingResponse,
    BookingStatusUpdateRequest,
    ConfirmBookingRequest,
    ConfirmBookingResponse,
    ErrorResponse,
    RatePassengerRequest,
    ReviewResponse,
    RideResponse,
    SuccessResponse,
)
from src.config import settings
from src.domain.review_window import review_time_remaining
from src.services.booking_service import BookingService

router = APIRouter(prefix="/bookings", tags=["bookings"])

_errors = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


def _detail(booking, ride, now: datetime) -> BookingDetailResponse:
    remaining = review_time_remaining(ride.completed_at, now)
    return BookingDetailResponse(
        **BookingResponse.model_validate(booking).model_dump(),
        ride=RideResponse.model_validate(ride),
        review_time_remaining_seconds=int(remaining.total_seconds()),
    )


@router.get(
    "/pending-confirmation",
    response_model=list[BookingDetailResponse],
    summary="Accepted bookings whose ride has departed but are not yet confirmed",
    responses={401: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit)
async def pending_confirmation(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    now = clock()
    rows = await service.pending_confirmations(user_id)
    return [_detail(booking, ride, now) for booking, ride in rows]


@router.get(
    "/{booking_id}",
    response_model=BookingDetailResponse,
    summary="Get a booking",
    responses=_errors,
)
@limiter.limit(settings.rate_limit)
async def get_booking(
    request: Request,
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    booking, ride = await service.get_booking(booking_id, user_id)
    return _detail(booking, ride, clock())


@router.patch(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Accept, decline or cancel a booking",
    description=(
        "The driver may accept or decline a pending booking.  The passenger "
        "may cancel a pending or accepted booking; cancelling an accepted "
        "booking returns its seat and applies the cancellation fee tiers."
    ),
    responses=_errors,
)
@limiter.limit(settings.rate_limit)
async def update_booking_status(
    request: Request,
    booking_id: int,
    body: BookingStatusUpdateRequest,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    return await service.update_status(booking_id, user_id, body.status)


@router.post(
    "/{booking_id}/confirm",
    response_model=ConfirmBookingResponse,
    summary="Confirm ride completion and optionally rate the driver",
    responses=_errors,
)
@limiter.limit(settings.rate_limit)
async def confirm_booking(
    request: Request,
    booking_id: int,
    body: ConfirmBookingRequest,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    booking, review = await service.confirm(
        booking_id, user_id, rating=body.rating, comment=body.comment
    )
    return ConfirmBookingResponse(
        booking=BookingResponse.model_validate(booking),
        review=ReviewResponse.model_validate(review) if review else None,
    )


@router.post(
    "/{booking_id}/rate-passenger",
    response_model=SuccessResponse,
    summary="Driver rates the passenger of a booking",
    responses=_errors,
)
@limiter.limit(settings.rate_limit)
async def rate_passenger(
    request: Request,
    booking_id: int,
    body: RatePassengerRequest,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    await service.rate_passenger(booking_id, user_id, body.rating, body.comment)
    return SuccessResponse()
