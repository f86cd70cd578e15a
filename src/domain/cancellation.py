"""
Cancellation Fee Policy  (Strategy Pattern)
===========================================

Decides how a held payment is split when a booking is cancelled.

Tiers (hours of notice before departure -> driver's share)
----------------------------------------------------------
* >= 72 h  : 10 %
* 48 - 72 h: 25 %
* 24 - 48 h: 50 %
* < 24 h   : 100 %

Pending bookings, declines and driver-side ride cancellations are always
refunded in full.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from .enums import PaymentStatus
from .timeutils import as_utc


@dataclass(frozen=True)
class Settlement:
    payment_status: PaymentStatus
    refund_amount: float
    driver_payout: float


# ── Strategy hierarchy ────────────────────────────────────────────────


class CancellationStrategy(ABC):
    @abstractmethod
    def settle(self, amount: float) -> Settlement: ...


class FullRefund(CancellationStrategy):
    def settle(self, amount: float) -> Settlement:
        return Settlement(PaymentStatus.REFUNDED, round(amount, 2), 0.0)


class TieredCancellationFee(CancellationStrategy):
    """Driver keeps a share of the payment that grows as departure nears."""

    # (minimum hours of notice, driver share), checked top-down
    TIERS = ((72, 0.10), (48, 0.25), (24, 0.50), (0, 1.0))

    def __init__(self, hours_until_departure: float):
        self.hours_until_departure = hours_until_departure

    @property
    def driver_share(self) -> float:
        for min_hours, share in self.TIERS:
            if self.hours_until_departure >= min_hours:
                return share
        return 1.0

    def settle(self, amount: float) -> Settlement:
        payout = round(amount * self.driver_share, 2)
        refund = round(amount - payout, 2)
        if payout == 0:
            status = PaymentStatus.REFUNDED
        elif refund == 0:
            status = PaymentStatus.RELEASED
        else:
            status = PaymentStatus.PARTIALLY_REFUNDED
        return Settlement(status, refund, payout)


# ── Policy facade ─────────────────────────────────────────────────────


def hours_until(departure_at: datetime, now: datetime) -> float:
    return (as_utc(departure_at) - as_utc(now)).total_seconds() / 3600


def settle_passenger_cancellation(
    amount: float, *, was_accepted: bool, departure_at: datetime, now: datetime
) -> Settlement:
    if not was_accepted:
        return FullRefund().settle(amount)
    return TieredCancellationFee(hours_until(departure_at, now)).settle(amount)
