from dataclasses import replace
from datetime import date

from conftest import future_date, make_override, make_staff, make_tenant, make_weekly_block
from bookflow.services.slots.schedule import ScheduleResolver, weekday_index


def test_weekday_index_is_sunday_based():
    assert weekday_index(date(2026, 10, 18)) == 0  # Sunday
    assert weekday_index(date(2026, 10, 19)) == 1
    assert weekday_index(date(2026, 10, 24)) == 6


def test_weekly_blocks(db, config):
    tenant = make_tenant(db)
    staff = make_staff(db, tenant)
    day = future_date()
    wd = weekday_index(day)
    make_weekly_block(db, tenant, staff, wd, 540, 720)
    make_weekly_block(db, tenant, staff, wd, 780, 1020)
    make_weekly_block(db, tenant, staff, (wd + 1) % 7, 0, 1440)

    result = ScheduleResolver(db, config).resolve(tenant.id, staff.id, day)

    assert result.supported
    assert result.source == "weekly"
    assert result.blocks == ((540, 720), (780, 1020))


def test_off_override_wins(db, config):
    tenant = make_tenant(db)
    staff = make_staff(db, tenant)
    day = future_date()
    make_weekly_block(db, tenant, staff, weekday_index(day), 540, 1020)
    make_override(db, tenant, staff, day, "ADD_HOURS", 1020, 1080)
    make_override(db, tenant, staff, day, "OFF")

    result = ScheduleResolver(db, config).resolve(tenant.id, staff.id, day)

    assert result.supported
    assert result.blocks == ()


def test_custom_hours_replace_weekly(db, config):
    tenant = make_tenant(db)
    staff = make_staff(db, tenant)
    day = future_date()
    make_weekly_block(db, tenant, staff, weekday_index(day), 540, 1020)
    make_override(db, tenant, staff, day, "CUSTOM_HOURS", 600, 660)

    result = ScheduleResolver(db, config).resolve(tenant.id, staff.id, day)

    assert result.source == "custom_hours"
    assert result.blocks == ((600, 660),)


def test_add_hours_append_to_weekly(db, config):
    tenant = make_tenant(db)
    staff = make_staff(db, tenant)
    day = future_date()
    make_weekly_block(db, tenant, staff, weekday_index(day), 540, 720)
    make_override(db, tenant, staff, day, "ADD_HOURS", 720, 780)
    make_override(db, tenant, staff, day, "ADD_HOURS", 900, 960)

    result = ScheduleResolver(db, config).resolve(tenant.id, staff.id, day)

    assert result.blocks == ((540, 780), (900, 960))


def test_no_schedule_is_supported_but_empty(db, config):
    tenant = make_tenant(db)
    staff = make_staff(db, tenant)

    result = ScheduleResolver(db, config).resolve(tenant.id, staff.id, future_date())

    assert result.supported
    assert result.blocks == ()


def test_unsupported_is_distinct_from_no_availability(db, config):
    tenant = make_tenant(db)
    staff = make_staff(db, tenant)
    off = replace(config, staff_schedules_enabled=False)

    result = ScheduleResolver(db, off).resolve(tenant.id, staff.id, future_date())

    assert not result.supported
    assert result.source == "unsupported"
