import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import settings
from .database import engine
from .errors import BookingError
from .routers import (
    availability,
    bookings,
    customer_memberships,
    membership_plans,
    staff_schedule,
    tenant_blackouts,
    tenant_hours,
    tenants,
)
from .services.slots import build_booking_config

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Schema is inspected once here, never per request
    app.state.booking_config = build_booking_config(settings, engine)
    logger.info(f"Booking engine config: {app.state.booking_config}")
    yield


app = FastAPI(title="Bookflow API", lifespan=lifespan)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid request.", "details": details})


app.include_router(availability.router)
app.include_router(bookings.router)
app.include_router(customer_memberships.router)
app.include_router(membership_plans.router)
app.include_router(tenant_hours.router)
app.include_router(staff_schedule.router)
app.include_router(tenant_blackouts.router)
app.include_router(tenants.router)
