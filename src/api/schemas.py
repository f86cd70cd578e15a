"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.domain.enums import BookingStatus, PaymentStatus, RideStatus


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    origin: str = Field(..., max_length=255)
    destination: str = Field(..., max_length=255)
    departure_at: datetime
    price_per_seat: float
    seats_total: int
    notes: Optional[str] = Field(None, max_length=1000)


class RideStatusUpdateRequest(BaseModel):
    status: str = Field(..., description="'completed' or 'cancelled'")


class BookingCreateRequest(BaseModel):
    payment_confirmed: bool = Field(
        False,
        description="Set once the passenger has authorised the payment hold.",
    )


class BookingStatusUpdateRequest(BaseModel):
    status: str = Field(..., description="'accepted', 'declined' or 'cancelled'")


class ConfirmBookingRequest(BaseModel):
    rating: Optional[int] = Field(None, description="Optional 1-5 rating of the driver.")
    comment: Optional[str] = None


class RatePassengerRequest(BaseModel):
    rating: Optional[int] = None
    comment: Optional[str] = None


# ── Responses ─────────────────────────────────────────────────────────


class RideResponse(BaseModel):
    id: int
    driver_id: int
    origin: str
    destination: str
    departure_at: datetime
    price_per_seat: float
    seats_total: int
    seats_available: int
    status: RideStatus
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RideDetailResponse(RideResponse):
    accepted_passenger_ids: list[int] = []


class BookingResponse(BaseModel):
    id: int
    ride_id: int
    passenger_id: int
    status: BookingStatus
    payment_status: PaymentStatus
    payment_amount: float
    paid_at: Optional[datetime] = None
    refund_amount: Optional[float] = None
    driver_payout: Optional[float] = None
    confirm_deadline: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BookingDetailResponse(BookingResponse):
    ride: RideResponse
    review_time_remaining_seconds: int = 0


class ReviewResponse(BaseModel):
    id: int
    booking_id: int
    reviewer_id: int
    reviewee_id: int
    rating: int
    comment: Optional[str] = None

    model_config = {"from_attributes": True}


class ConfirmBookingResponse(BaseModel):
    message: str = "Ride confirmed successfully"
    booking: BookingResponse
    review: Optional[ReviewResponse] = None


class SuccessResponse(BaseModel):
    success: bool = True


class LedgerAuditResponse(BaseModel):
    ride_id: int
    seats_total: int
    seats_available: int
    accepted_bookings: int
    balanced: bool


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    code: str
