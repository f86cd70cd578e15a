"""
FastAPI application factory.

* Registers routes for rides, bookings and admin.
* Starts / stops the background settlement worker via lifespan events.
* Maps booking-engine errors to JSON responses.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.errors import register_exception_handlers
from src.api.middleware import limiter
from src.api.routes import admin, bookings, rides
from src.config import settings
from src.infrastructure.redis_client import close_redis
from src.workers import sweeper as _sweeper

logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the settlement worker on startup; stop on shutdown."""
    if settings.sweeper_enabled:
        await _sweeper.start_sweeper_loop()
    yield
    if settings.sweeper_enabled:
        await _sweeper.stop_sweeper_loop()
        await close_redis()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Campus Ride-Share Booking API",
        description=(
            "Drivers publish rides with a fixed number of seats; passengers "
            "request seats, drivers accept or decline, and both sides confirm "
            "completion and rate each other.  Seat inventory and booking "
            "state stay consistent under concurrent requests."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    register_exception_handlers(app)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
