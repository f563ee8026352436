from datetime import timezone
from zoneinfo import ZoneInfo

import pytest

from conftest import future_date, make_blackout, make_staff, make_tenant, at


@pytest.fixture
def tenant(db):
    return make_tenant(db)


# ── Tenant hours ─────────────────────────────────────────────────────────


def test_put_tenant_hours_upserts_given_days(client, tenant):
    resp = client.put(
        "/tenant-hours",
        params={"tenant": "acme"},
        json={"hours": [
            {"dayOfWeek": 0, "isClosed": True},
            {"dayOfWeek": 5, "openTime": "22:00", "closeTime": "02:00"},
        ]},
    )

    assert resp.status_code == 200
    by_day = {row["day_of_week"]: row for row in resp.json()}
    assert len(by_day) == 7
    assert by_day[0]["is_closed"] is True
    assert by_day[0]["open_time"] is None
    assert (by_day[5]["open_time"], by_day[5]["close_time"]) == ("22:00", "02:00")
    assert by_day[1]["open_time"] == "09:00"


def test_tenant_hours_require_times_unless_closed(client, tenant):
    resp = client.put("/tenant-hours", params={"tenant": "acme"}, json={"hours": [{"dayOfWeek": 2}]})
    assert resp.status_code == 400


def test_unknown_tenant_is_rejected(client, tenant):
    resp = client.get("/tenant-hours", params={"tenant": "nobody"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Unknown tenant."}


# ── Staff schedule ───────────────────────────────────────────────────────


def test_put_staff_schedule_replaces_blocks(client, db, tenant):
    staff = make_staff(db, tenant)
    url = f"/staff/{staff.id}/schedule"

    client.put(url, params={"tenant": "acme"}, json={"blocks": [
        {"weekday": 1, "startMinute": 540, "endMinute": 720},
        {"weekday": 1, "startMinute": 780, "endMinute": 1020},
    ]})
    resp = client.put(url, params={"tenant": "acme"}, json={"blocks": [
        {"weekday": 3, "startMinute": 600, "endMinute": 900},
    ]})

    assert resp.status_code == 200
    assert resp.json() == [{"weekday": 3, "start_minute": 600, "end_minute": 900}]
    assert client.get(url, params={"tenant": "acme"}).json() == resp.json()


def test_staff_schedule_block_must_be_ordered(client, db, tenant):
    staff = make_staff(db, tenant)
    resp = client.put(
        f"/staff/{staff.id}/schedule",
        params={"tenant": "acme"},
        json={"blocks": [{"weekday": 1, "startMinute": 600, "endMinute": 600}]},
    )
    assert resp.status_code == 400


def test_duplicate_off_override_is_409(client, db, tenant):
    staff = make_staff(db, tenant)
    url = f"/staff/{staff.id}/overrides"
    body = {"date": future_date().isoformat(), "type": "off"}

    first = client.post(url, params={"tenant": "acme"}, json=body)
    second = client.post(url, params={"tenant": "acme"}, json=body)

    assert first.status_code == 201
    assert first.json()["type"] == "OFF"
    assert first.json()["start_minute"] is None
    assert second.status_code == 409


def test_override_delete(client, db, tenant):
    staff = make_staff(db, tenant)
    url = f"/staff/{staff.id}/overrides"
    created = client.post(url, params={"tenant": "acme"}, json={
        "date": future_date().isoformat(), "type": "ADD_HOURS", "startMinute": 1080, "endMinute": 1200,
    }).json()

    resp = client.delete(f"{url}/{created['id']}", params={"tenant": "acme"})

    assert resp.status_code == 204
    assert client.get(url, params={"tenant": "acme"}).json() == []


def test_foreign_staff_schedule_is_404(client, db, tenant):
    other = make_tenant(db, slug="other")
    staff = make_staff(db, other)
    resp = client.get(f"/staff/{staff.id}/schedule", params={"tenant": "acme"})
    assert resp.status_code == 404


# ── Blackouts ────────────────────────────────────────────────────────────


def test_create_blackout_converts_local_time(client, db, fake_redis):
    tenant = make_tenant(db, timezone="Europe/Berlin")
    day = future_date()
    local = at(day, "12:00")
    expected = local.replace(tzinfo=ZoneInfo("Europe/Berlin")).astimezone(timezone.utc).replace(tzinfo=None)

    resp = client.post("/tenant-blackouts", params={"tenant": "acme"}, json={
        "startsAt": local.isoformat(),
        "endsAt": at(day, "13:00").isoformat(),
        "reason": "  Staff meeting ",
    })

    assert resp.status_code == 201
    body = resp.json()
    assert body["reason"] == "Staff meeting"
    assert body["starts_at"].startswith(expected.isoformat())
    assert fake_redis.values.get(f"tenant:{tenant.id}:bookings:heartbeat")


def test_overlapping_blackout_same_scope_is_409(client, db, tenant):
    day = future_date()
    existing = make_blackout(db, tenant, at(day, "12:00"), at(day, "14:00"))

    resp = client.post("/tenant-blackouts", params={"tenant": "acme"}, json={
        "startsAt": at(day, "13:00").isoformat(),
        "endsAt": at(day, "15:00").isoformat(),
    })

    assert resp.status_code == 409
    assert resp.json()["blackout"]["id"] == existing.id


def test_blackout_on_other_scope_may_overlap(client, db, tenant):
    day = future_date()
    staff = make_staff(db, tenant)
    make_blackout(db, tenant, at(day, "12:00"), at(day, "14:00"))

    resp = client.post("/tenant-blackouts", params={"tenant": "acme"}, json={
        "startsAt": at(day, "13:00").isoformat(),
        "endsAt": at(day, "15:00").isoformat(),
        "staffId": staff.id,
    })

    assert resp.status_code == 201


def test_blackout_delete_is_soft(client, db, tenant):
    day = future_date()
    blackout = make_blackout(db, tenant, at(day, "12:00"), at(day, "14:00"))

    resp = client.delete(f"/tenant-blackouts/{blackout.id}", params={"tenant": "acme"})

    assert resp.status_code == 200
    assert resp.json()["is_active"] == 0
    assert client.get("/tenant-blackouts", params={"tenant": "acme"}).json() == []
    listed = client.get("/tenant-blackouts", params={"tenant": "acme", "includeInactive": "true"}).json()
    assert [b["id"] for b in listed] == [blackout.id]


def test_blackout_update_moves_window_in_place(client, db, tenant, fake_redis):
    day = future_date()
    blackout = make_blackout(db, tenant, at(day, "12:00"), at(day, "14:00"))

    # overlapping only its own old window is fine
    resp = client.put(f"/tenant-blackouts/{blackout.id}", params={"tenant": "acme"}, json={
        "startsAt": at(day, "13:00").isoformat(),
        "endsAt": at(day, "15:00").isoformat(),
        "reason": "Inventory",
    })

    assert resp.status_code == 200
    body = resp.json()
    assert body["starts_at"].startswith(at(day, "13:00").isoformat())
    assert body["ends_at"].startswith(at(day, "15:00").isoformat())
    assert body["reason"] == "Inventory"
    assert fake_redis.values.get(f"tenant:{tenant.id}:bookings:heartbeat")


def test_blackout_update_onto_same_scope_is_409(client, db, tenant):
    day = future_date()
    other = make_blackout(db, tenant, at(day, "09:00"), at(day, "10:00"))
    blackout = make_blackout(db, tenant, at(day, "12:00"), at(day, "14:00"))

    resp = client.put(f"/tenant-blackouts/{blackout.id}", params={"tenant": "acme"}, json={
        "startsAt": at(day, "09:30").isoformat(),
    })

    assert resp.status_code == 409
    assert resp.json()["blackout"]["id"] == other.id


def test_blackout_update_validates_and_toggles(client, db, tenant):
    day = future_date()
    blackout = make_blackout(db, tenant, at(day, "12:00"), at(day, "14:00"))
    url = f"/tenant-blackouts/{blackout.id}"

    assert client.put(url, params={"tenant": "acme"}, json={"endsAt": at(day, "11:00").isoformat()}).status_code == 400
    assert client.put("/tenant-blackouts/9999", params={"tenant": "acme"}, json={"reason": "x"}).status_code == 404

    off = client.put(url, params={"tenant": "acme"}, json={"isActive": False, "reason": ""})
    assert off.status_code == 200
    assert off.json()["is_active"] == 0
    assert off.json()["reason"] is None

    on = client.put(url, params={"tenant": "acme"}, json={"isActive": True})
    assert on.json()["is_active"] == 1
