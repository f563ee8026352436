import os
from datetime import date, datetime, timedelta

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bookflow.database import enable_sqlite_fk, get_db
from bookflow.dependencies import get_config
from bookflow.main import app
from bookflow.models.generated import (
    Base,
    Bookings,
    Customers,
    MembershipPlans,
    Resources,
    Services,
    Staff,
    StaffScheduleOverrides,
    StaffSchedules,
    TenantBlackouts,
    TenantHours,
    Tenants,
)
from bookflow.services import events
from bookflow.services.clock import utcnow
from bookflow.services.slots import BookingConfig
from bookflow.routers import tenants as tenants_router


class FakeRedis:
    """Records what the app would have sent to Redis."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.lists: dict[str, list[str]] = {}
        self.values: dict[str, str] = {}

    def rpush(self, key, value):
        if self.fail:
            raise ConnectionError("redis down")
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    def set(self, key, value):
        if self.fail:
            raise ConnectionError("redis down")
        self.values[key] = value
        return True

    def ping(self):
        if self.fail:
            raise ConnectionError("redis down")
        return True


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", enable_sqlite_fk)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def config():
    return BookingConfig()


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(events, "redis_client", fake)
    monkeypatch.setattr(tenants_router, "redis_client", fake)
    return fake


@pytest.fixture
def client(db, config, fake_redis):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_config] = lambda: config
    yield TestClient(app)
    app.dependency_overrides.clear()


# ── Factories ────────────────────────────────────────────────────────────


def future_date(days: int = 7) -> date:
    return date.today() + timedelta(days=days)


def at(day: date, hhmm: str) -> datetime:
    hour, minute = map(int, hhmm.split(":"))
    return datetime(day.year, day.month, day.day, hour, minute)


def make_tenant(db, slug="acme", open_time="09:00", close_time="17:00", **kwargs) -> Tenants:
    tenant = Tenants(slug=slug, name=kwargs.pop("name", slug.title()), timezone=kwargs.pop("timezone", "UTC"), **kwargs)
    db.add(tenant)
    db.flush()
    for day in range(7):
        db.add(TenantHours(
            tenant_id=tenant.id,
            day_of_week=day,
            open_time=open_time,
            close_time=close_time,
            is_closed=0,
        ))
    db.commit()
    return tenant


def make_service(db, tenant, **kwargs) -> Services:
    values = {
        "name": "Session",
        "duration_minutes": 60,
        "max_parallel_bookings": 1,
        "availability_basis": "auto",
    }
    values.update(kwargs)
    service = Services(tenant_id=tenant.id, **values)
    db.add(service)
    db.commit()
    return service


def make_staff(db, tenant, name="Alex") -> Staff:
    staff = Staff(tenant_id=tenant.id, name=name)
    db.add(staff)
    db.commit()
    return staff


def make_resource(db, tenant, name="Court 1") -> Resources:
    resource = Resources(tenant_id=tenant.id, name=name)
    db.add(resource)
    db.commit()
    return resource


def make_customer(db, tenant, email="pat@example.com", name="Pat", phone=None) -> Customers:
    customer = Customers(tenant_id=tenant.id, email=email, name=name, phone=phone)
    db.add(customer)
    db.commit()
    return customer


def make_booking(db, tenant, service, start: datetime, duration=60, status="confirmed", **kwargs) -> Bookings:
    now = utcnow()
    booking = Bookings(
        tenant_id=tenant.id,
        service_id=service.id,
        start_time=start,
        end_time=start + timedelta(minutes=duration),
        duration_minutes=duration,
        status=status,
        created_at=now,
        updated_at=now,
        **kwargs,
    )
    db.add(booking)
    db.commit()
    return booking


def make_blackout(db, tenant, starts_at: datetime, ends_at: datetime, **kwargs) -> TenantBlackouts:
    blackout = TenantBlackouts(tenant_id=tenant.id, starts_at=starts_at, ends_at=ends_at, is_active=1, **kwargs)
    db.add(blackout)
    db.commit()
    return blackout


def make_weekly_block(db, tenant, staff, weekday, start_minute, end_minute) -> StaffSchedules:
    row = StaffSchedules(
        tenant_id=tenant.id,
        staff_id=staff.id,
        weekday=weekday,
        start_minute=start_minute,
        end_minute=end_minute,
    )
    db.add(row)
    db.commit()
    return row


def make_override(db, tenant, staff, day, type_, start_minute=None, end_minute=None) -> StaffScheduleOverrides:
    row = StaffScheduleOverrides(
        tenant_id=tenant.id,
        staff_id=staff.id,
        date=day,
        type=type_,
        start_minute=start_minute,
        end_minute=end_minute,
    )
    db.add(row)
    db.commit()
    return row


def make_plan(db, tenant, included_minutes=0, included_uses=0, validity_days=30, name="Pass") -> MembershipPlans:
    plan = MembershipPlans(
        tenant_id=tenant.id,
        name=name,
        included_minutes=included_minutes,
        included_uses=included_uses,
        validity_days=validity_days,
        is_active=1,
    )
    db.add(plan)
    db.commit()
    return plan
