import pytest

from conftest import at, future_date, make_booking, make_resource, make_service, make_staff, make_tenant
from bookflow.services.conflicts import check_conflicts


@pytest.fixture
def setup(db):
    tenant = make_tenant(db)
    service = make_service(db, tenant)
    staff = make_staff(db, tenant)
    resource = make_resource(db, tenant)
    day = future_date()
    return tenant, service, staff, resource, day


def test_overlap_on_same_staff_conflicts(db, setup):
    tenant, service, staff, _, day = setup
    existing = make_booking(db, tenant, service, at(day, "10:00"), staff_id=staff.id)

    result = check_conflicts(db, tenant.id, at(day, "10:30"), 60, staff_id=staff.id)

    assert result.conflict
    assert [r["id"] for r in result.rows] == [existing.id]
    assert result.rows[0]["kind"] == "staff"


def test_touching_edges_do_not_conflict(db, setup):
    tenant, service, staff, _, day = setup
    make_booking(db, tenant, service, at(day, "10:00"), staff_id=staff.id)

    assert not check_conflicts(db, tenant.id, at(day, "11:00"), 60, staff_id=staff.id).conflict
    assert not check_conflicts(db, tenant.id, at(day, "09:00"), 60, staff_id=staff.id).conflict


def test_staff_or_resource_match_is_enough(db, setup):
    tenant, service, staff, resource, day = setup
    make_booking(db, tenant, service, at(day, "10:00"), resource_id=resource.id)

    result = check_conflicts(db, tenant.id, at(day, "10:00"), 60, staff_id=staff.id, resource_id=resource.id)

    assert result.conflict
    assert result.rows[0]["kind"] == "resource"


def test_only_supplied_constraints_apply(db, setup):
    tenant, service, staff, resource, day = setup
    make_booking(db, tenant, service, at(day, "10:00"), staff_id=staff.id)

    assert not check_conflicts(db, tenant.id, at(day, "10:00"), 60, resource_id=resource.id).conflict
    assert not check_conflicts(db, tenant.id, at(day, "10:00"), 60).conflict


def test_cancelled_and_excluded_bookings_are_ignored(db, setup):
    tenant, service, staff, _, day = setup
    make_booking(db, tenant, service, at(day, "10:00"), staff_id=staff.id, status="cancelled")
    pending = make_booking(db, tenant, service, at(day, "12:00"), staff_id=staff.id, status="pending")

    assert not check_conflicts(db, tenant.id, at(day, "10:00"), 60, staff_id=staff.id).conflict
    assert check_conflicts(db, tenant.id, at(day, "12:00"), 30, staff_id=staff.id).conflict
    assert not check_conflicts(
        db, tenant.id, at(day, "12:00"), 30, staff_id=staff.id, exclude_booking_id=pending.id,
    ).conflict


def test_other_tenant_bookings_never_conflict(db, setup):
    tenant, _, _, _, day = setup
    other = make_tenant(db, slug="other")
    other_service = make_service(db, other)
    other_staff = make_staff(db, other)
    make_booking(db, other, other_service, at(day, "10:00"), staff_id=other_staff.id)

    assert not check_conflicts(db, tenant.id, at(day, "10:00"), 60, staff_id=other_staff.id).conflict


def test_requires_positive_duration(db, setup):
    tenant, _, staff, _, day = setup
    with pytest.raises(ValueError):
        check_conflicts(db, tenant.id, at(day, "10:00"), 0, staff_id=staff.id)
