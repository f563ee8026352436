from dataclasses import replace
from datetime import timedelta

import pytest

from conftest import (
    at,
    future_date,
    make_blackout,
    make_booking,
    make_override,
    make_resource,
    make_service,
    make_staff,
    make_tenant,
    make_weekly_block,
)
from bookflow.errors import NotFoundError, ValidationError
from bookflow.models.generated import TenantHours
from bookflow.services.slots import calculate_service_availability
from bookflow.services.slots.schedule import weekday_index


def _by_time(result):
    return {slot["time"]: slot for slot in result["slots"]}


def test_resource_booking_blocks_only_its_slot(client, db):
    tenant = make_tenant(db)
    service = make_service(db, tenant, requires_resource=1)
    resource = make_resource(db, tenant)
    day = future_date()
    make_booking(db, tenant, service, at(day, "10:00"), resource_id=resource.id)

    resp = client.get("/availability", params={
        "tenant": "acme",
        "service": service.id,
        "date": day.isoformat(),
        "resource": resource.id,
    })

    assert resp.status_code == 200
    body = resp.json()
    times = [s["time"] for s in body["slots"]]
    assert times == ["09:00", "10:00", "11:00", "12:00", "13:00", "14:00", "15:00", "16:00"]
    assert [s["time"] for s in body["slots"] if not s["available"]] == ["10:00"]
    assert body["meta"]["availability_basis"] == "resource"
    assert body["meta"]["reason"] is None


def test_tenant_can_be_given_by_id(client, db):
    tenant = make_tenant(db)
    service = make_service(db, tenant)

    resp = client.get("/availability", params={
        "tenant": str(tenant.id), "service": service.id, "date": future_date().isoformat(),
    })

    assert resp.status_code == 200
    assert len(resp.json()["slots"]) == 8


def test_unknown_tenant_is_400(client, db):
    make_tenant(db)
    resp = client.get("/availability", params={"tenant": "nope", "service": 1, "date": future_date().isoformat()})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Unknown tenant."


def test_staff_required_reason(db, config):
    tenant = make_tenant(db)
    service = make_service(db, tenant, requires_staff=1)

    result = calculate_service_availability(db, tenant, service.id, future_date(), config=config)

    assert result["slots"] == []
    assert result["meta"]["reason"] == "staff_required"


def test_resource_required_reason(db, config):
    tenant = make_tenant(db)
    service = make_service(db, tenant, availability_basis="resource")

    result = calculate_service_availability(db, tenant, service.id, future_date(), config=config)

    assert result["meta"]["reason"] == "resource_required"


def test_tenant_closed_reason(db, config):
    tenant = make_tenant(db)
    service = make_service(db, tenant)
    day = future_date()
    row = db.query(TenantHours).filter(
        TenantHours.tenant_id == tenant.id,
        TenantHours.day_of_week == weekday_index(day),
    ).one()
    row.is_closed = 1
    db.commit()

    result = calculate_service_availability(db, tenant, service.id, day, config=config)

    assert result["slots"] == []
    assert result["meta"]["reason"] == "tenant_closed"


def test_staff_schedule_intersects_tenant_hours(db, config):
    tenant = make_tenant(db)
    service = make_service(db, tenant, requires_staff=1)
    staff = make_staff(db, tenant)
    day = future_date()
    make_weekly_block(db, tenant, staff, weekday_index(day), 480, 660)  # 08:00-11:00

    result = calculate_service_availability(db, tenant, service.id, day, staff_id=staff.id, config=config)

    assert [s["time"] for s in result["slots"]] == ["09:00", "10:00"]
    assert result["meta"]["staff_schedule"] == "weekly"


def test_staff_off_gives_staff_unavailable(db, config):
    tenant = make_tenant(db)
    service = make_service(db, tenant, requires_staff=1)
    staff = make_staff(db, tenant)
    day = future_date()
    make_weekly_block(db, tenant, staff, weekday_index(day), 540, 1020)
    make_override(db, tenant, staff, day, "OFF")

    result = calculate_service_availability(db, tenant, service.id, day, staff_id=staff.id, config=config)

    assert result["slots"] == []
    assert result["meta"]["reason"] == "staff_unavailable"


def test_unsupported_schedules_fall_back_to_tenant_hours(db, config):
    tenant = make_tenant(db)
    service = make_service(db, tenant, requires_staff=1)
    staff = make_staff(db, tenant)

    result = calculate_service_availability(
        db, tenant, service.id, future_date(), staff_id=staff.id,
        config=replace(config, staff_schedules_enabled=False),
    )

    assert len(result["slots"]) == 8
    assert result["meta"]["staff_schedule"] == "unsupported"
    assert result["meta"]["reason"] is None


def test_capacity_counts_same_service_for_basis_none(db, config):
    tenant = make_tenant(db)
    service = make_service(db, tenant, max_parallel_bookings=2)
    other = make_service(db, tenant, name="Other")
    day = future_date()
    make_booking(db, tenant, service, at(day, "09:00"))
    make_booking(db, tenant, service, at(day, "10:00"))
    make_booking(db, tenant, service, at(day, "10:00"))
    make_booking(db, tenant, other, at(day, "11:00"))
    make_booking(db, tenant, service, at(day, "12:00"), status="cancelled")

    slots = _by_time(calculate_service_availability(db, tenant, service.id, day, config=config))

    assert slots["09:00"]["available"] and slots["09:00"]["overlaps"] == 1
    assert not slots["10:00"]["available"] and slots["10:00"]["overlaps"] == 2
    assert slots["11:00"]["available"] and slots["11:00"]["overlaps"] == 0
    assert slots["12:00"]["available"]
    assert slots["10:00"]["capacity"] == 2


def test_both_basis_requires_each_dimension_under_capacity(db, config):
    tenant = make_tenant(db)
    service = make_service(db, tenant, requires_staff=1, requires_resource=1)
    other = make_service(db, tenant, name="Other")
    staff = make_staff(db, tenant)
    busy_staff = make_staff(db, tenant, name="Sam")
    resource = make_resource(db, tenant)
    day = future_date()
    make_weekly_block(db, tenant, staff, weekday_index(day), 540, 1020)
    make_booking(db, tenant, other, at(day, "09:00"), staff_id=staff.id)
    make_booking(db, tenant, other, at(day, "10:00"), resource_id=resource.id, staff_id=busy_staff.id)

    slots = _by_time(calculate_service_availability(
        db, tenant, service.id, day, staff_id=staff.id, resource_id=resource.id, config=config,
    ))

    assert not slots["09:00"]["available"]
    assert not slots["10:00"]["available"]
    assert slots["11:00"]["available"]


def test_blackout_makes_slot_unavailable(db, config):
    tenant = make_tenant(db)
    service = make_service(db, tenant, max_parallel_bookings=5)
    day = future_date()
    make_blackout(db, tenant, at(day, "13:30"), at(day, "14:00"))

    slots = _by_time(calculate_service_availability(db, tenant, service.id, day, config=config))

    assert slots["13:00"]["blackout_hits"] == 1
    assert not slots["13:00"]["available"]
    assert slots["14:00"]["available"]


def test_blackout_scoped_to_other_resource_is_ignored(db, config):
    tenant = make_tenant(db)
    service = make_service(db, tenant, requires_resource=1)
    court1 = make_resource(db, tenant)
    court2 = make_resource(db, tenant, name="Court 2")
    day = future_date()
    make_blackout(db, tenant, at(day, "09:00"), at(day, "17:00"), resource_id=court2.id)

    result = calculate_service_availability(db, tenant, service.id, day, resource_id=court1.id, config=config)

    assert all(s["available"] for s in result["slots"])


def test_overnight_window_labels_wall_clock(db, config):
    tenant = make_tenant(db, open_time="22:00", close_time="02:00")
    service = make_service(db, tenant)
    day = future_date()
    make_booking(db, tenant, service, at(day + timedelta(days=1), "01:00"))

    result = calculate_service_availability(db, tenant, service.id, day, config=config)

    slots = result["slots"]
    assert [s["time"] for s in slots] == ["22:00", "23:00", "00:00", "01:00"]
    assert slots[2]["starts_at"] == f"{(day + timedelta(days=1)).isoformat()}T00:00:00Z"
    assert slots[2]["label"] == "12:00 AM"
    assert not slots[3]["available"]


def test_slots_follow_tenant_timezone(db, config):
    tenant = make_tenant(db, timezone="America/New_York")
    service = make_service(db, tenant)
    day = future_date()

    result = calculate_service_availability(db, tenant, service.id, day, config=config)

    first = result["slots"][0]
    assert first["time"] == "09:00"
    assert first["starts_at"].endswith(("T13:00:00Z", "T14:00:00Z"))


def test_slot_interval_defaults_to_duration(db, config):
    tenant = make_tenant(db)
    service = make_service(db, tenant, duration_minutes=90)

    result = calculate_service_availability(db, tenant, service.id, future_date(), config=config)

    assert result["meta"]["slot_interval_minutes"] == 90
    assert [s["time"] for s in result["slots"]] == ["09:00", "10:30", "12:00", "13:30", "15:00", "16:30"]


def test_foreign_staff_is_rejected(db, config):
    tenant = make_tenant(db)
    other = make_tenant(db, slug="other")
    service = make_service(db, tenant, requires_staff=1)
    foreign = make_staff(db, other)

    with pytest.raises(ValidationError):
        calculate_service_availability(db, tenant, service.id, future_date(), staff_id=foreign.id, config=config)


def test_unknown_service_is_not_found(db, config):
    tenant = make_tenant(db)
    with pytest.raises(NotFoundError):
        calculate_service_availability(db, tenant, 999, future_date(), config=config)
