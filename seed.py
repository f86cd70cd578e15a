"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 8 sample users (two without a verified university)
  - 5 sample rides (mix of UPCOMING, COMPLETED, CANCELLED)
  - bookings in every lifecycle state, with the seat ledger balanced
"""

import asyncio
from datetime import timedelta

from sqlalchemy import text

from src.domain.enums import BookingStatus, PaymentStatus, RideStatus
from src.domain.timeutils import utcnow
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.models import BookingModel, RideModel, UserModel


USERS = [
    {"name": "Aarav Sharma", "email": "aarav@example.edu", "university": "State University"},
    {"name": "Priya Patel", "email": "priya@example.edu", "university": "State University"},
    {"name": "Rohan Mehta", "email": "rohan@example.edu", "university": "Tech Institute"},
    {"name": "Sneha Gupta", "email": "sneha@example.edu", "university": "Tech Institute"},
    {"name": "Vikram Singh", "email": "vikram@example.edu", "university": "State University"},
    {"name": "Ananya Reddy", "email": "ananya@example.edu", "university": "Arts College"},
    {"name": "Karan Joshi", "email": "karan@example.com", "university": None},
    {"name": "Meera Nair", "email": "meera@example.com", "university": None},
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        now = utcnow()

        # ── Users ─────────────────────────────────────────────────────
        users = []
        for u in USERS:
            m = UserModel(name=u["name"], email=u["email"], university=u["university"])
            session.add(m)
            users.append(m)
        await session.flush()
        print(f"  Created {len(users)} users")

        # ── Rides ─────────────────────────────────────────────────────
        rides_data = [
            {
                "driver": users[0],
                "origin": "North Campus", "destination": "Airport",
                "departure": now + timedelta(days=2), "price": 15.0, "seats": 3,
                "status": RideStatus.UPCOMING,
            },
            {
                "driver": users[1],
                "origin": "Library", "destination": "Downtown Station",
                "departure": now + timedelta(days=5), "price": 8.5, "seats": 2,
                "status": RideStatus.UPCOMING,
            },
            {
                "driver": users[2],
                "origin": "Tech Institute", "destination": "State University",
                "departure": now - timedelta(hours=6), "price": 6.0, "seats": 4,
                "status": RideStatus.COMPLETED,
            },
            {
                "driver": users[3],
                "origin": "Dorm Row", "destination": "Ski Resort",
                "departure": now + timedelta(days=10), "price": 30.0, "seats": 4,
                "status": RideStatus.CANCELLED,
            },
            {
                "driver": users[4],
                "origin": "Arts College", "destination": "City Museum",
                "departure": now + timedelta(hours=20), "price": 5.0, "seats": 1,
                "status": RideStatus.UPCOMING,
            },
        ]
        rides = []
        for r in rides_data:
            ride = RideModel(
                driver_id=r["driver"].id,
                origin=r["origin"],
                destination=r["destination"],
                departure_at=r["departure"],
                price_per_seat=r["price"],
                seats_total=r["seats"],
                seats_available=r["seats"],
                status=r["status"],
                completed_at=now - timedelta(hours=2)
                if r["status"] == RideStatus.COMPLETED
                else None,
            )
            session.add(ride)
            rides.append(ride)
        await session.flush()
        print(f"  Created {len(rides)} rides")

        # ── Bookings ──────────────────────────────────────────────────
        # (ride index, passenger index, status, payment status)
        bookings_data = [
            (0, 4, BookingStatus.ACCEPTED, PaymentStatus.HELD),
            (0, 5, BookingStatus.PENDING, PaymentStatus.HELD),
            (0, 2, BookingStatus.DECLINED, PaymentStatus.REFUNDED),
            (1, 3, BookingStatus.CANCELLED, PaymentStatus.REFUNDED),
            (2, 0, BookingStatus.ACCEPTED, PaymentStatus.HELD),
            (2, 1, BookingStatus.COMPLETED, PaymentStatus.RELEASED),
            (3, 5, BookingStatus.CANCELLED, PaymentStatus.REFUNDED),
            (4, 1, BookingStatus.ACCEPTED, PaymentStatus.HELD),
        ]
        for ride_idx, passenger_idx, status, payment in bookings_data:
            ride = rides[ride_idx]
            amount = ride.price_per_seat
            booking = BookingModel(
                ride_id=ride.id,
                passenger_id=users[passenger_idx].id,
                status=status,
                payment_status=payment,
                payment_amount=amount,
                paid_at=now - timedelta(days=1),
                refund_amount=amount if payment == PaymentStatus.REFUNDED else None,
                driver_payout=amount if payment == PaymentStatus.RELEASED else None,
            )
            if ride.status == RideStatus.COMPLETED:
                booking.confirm_deadline = ride.completed_at + timedelta(hours=24)
                if status == BookingStatus.COMPLETED:
                    booking.confirmed_at = now - timedelta(hours=1)
            if status == BookingStatus.ACCEPTED:
                ride.seats_available -= 1
            session.add(booking)
        await session.flush()
        print(f"  Created {len(bookings_data)} bookings")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
