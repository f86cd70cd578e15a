"""
Ride endpoints
==============

POST  /api/v1/rides                     -- publish a ride (driver)
GET   /api/v1/rides/{ride_id}           -- ride read model with accepted passengers
PATCH /api/v1/rides/{ride_id}           -- driver marks the ride completed / cancelled
POST  /api/v1/rides/{ride_id}/bookings  -- request a seat (passenger)
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import (
    get_booking_service,
    get_current_user_id,
    get_ride_service,
)
from src.api.middleware import limiter
from src.api.schemas import (
    BookingCreateRequest,
    BookingResponse,
    ErrorResponse,
    RideCreateRequest,
    RideDetailResponse,
    RideResponse,
    RideStatusUpdateRequest,
)
from src.config import settings
from src.services.booking_service import BookingService
from src.services.ride_service import RideService

router = APIRouter(prefix="/rides", tags=["rides"])

_errors = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Publish a ride",
    responses=_errors,
)
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    user_id: int = Depends(get_current_user_id),
    service: RideService = Depends(get_ride_service),
):
    return await service.create_ride(
        user_id,
        origin=body.origin,
        destination=body.destination,
        departure_at=body.departure_at,
        price_per_seat=body.price_per_seat,
        seats_total=body.seats_total,
        notes=body.notes,
    )


@router.get(
    "/{ride_id}",
    response_model=RideDetailResponse,
    summary="Get a ride with its accepted passengers",
    responses={404: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: int,
    service: RideService = Depends(get_ride_service),
):
    ride, passenger_ids = await service.get_ride(ride_id)
    return RideDetailResponse.model_validate(ride).model_copy(
        update={"accepted_passenger_ids": passenger_ids}
    )


@router.patch(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Mark a ride completed or cancel it",
    description=(
        "Completing stamps a confirmation deadline on every accepted booking "
        "and declines pending requests.  Cancelling cancels and refunds every "
        "live booking and restores the seat inventory."
    ),
    responses=_errors,
)
@limiter.limit(settings.rate_limit)
async def update_ride_status(
    request: Request,
    ride_id: int,
    body: RideStatusUpdateRequest,
    user_id: int = Depends(get_current_user_id),
    service: RideService = Depends(get_ride_service),
):
    return await service.update_status(ride_id, user_id, body.status)


@router.post(
    "/{ride_id}/bookings",
    status_code=201,
    response_model=BookingResponse,
    summary="Request a seat on a ride",
    responses=_errors,
)
@limiter.limit(settings.rate_limit)
async def create_booking(
    request: Request,
    ride_id: int,
    body: BookingCreateRequest,
    user_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    return await service.create_booking(ride_id, user_id, body.payment_confirmed)
