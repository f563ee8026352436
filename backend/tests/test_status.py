import pytest

from conftest import at, future_date, make_booking, make_service, make_tenant
from bookflow.models.generated import Tenants
from bookflow.services.booking_tx import can_transition_status


@pytest.mark.parametrize("from_status,to_status,allowed", [
    ("pending", "confirmed", True),
    ("pending", "cancelled", True),
    ("confirmed", "cancelled", True),
    ("confirmed", "pending", False),
    ("cancelled", "confirmed", False),
    ("cancelled", "pending", False),
    ("pending", "pending", True),
    ("cancelled", "cancelled", True),
])
def test_transition_matrix(from_status, to_status, allowed):
    assert can_transition_status(from_status, to_status) is allowed


@pytest.fixture
def booking(db):
    tenant = make_tenant(db)
    service = make_service(db, tenant)
    return make_booking(db, tenant, service, at(future_date(), "10:00"), status="pending")


def _patch(client, booking_id, status, tenant="acme"):
    return client.patch(f"/bookings/{booking_id}/status", params={"tenant": tenant}, json={"status": status})


def test_confirm_then_cancel(client, booking, fake_redis):
    resp = _patch(client, booking.id, "confirmed")
    assert resp.status_code == 200
    assert resp.json()["status"] == "confirmed"

    resp = _patch(client, booking.id, "cancelled")
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"

    assert len(fake_redis.lists["events:p2p"]) == 2


def test_cancelled_is_terminal(client, booking):
    assert _patch(client, booking.id, "cancelled").status_code == 200

    resp = _patch(client, booking.id, "confirmed")

    assert resp.status_code == 409
    assert "cancelled" in resp.json()["error"]


def test_same_status_is_a_noop_without_heartbeat(client, db, booking, fake_redis):
    resp = _patch(client, booking.id, "pending")

    assert resp.status_code == 200
    assert resp.json()["status"] == "pending"
    assert fake_redis.lists == {}
    assert db.query(Tenants).one().last_booking_change_at is None


def test_unknown_status_is_400(client, booking):
    assert _patch(client, booking.id, "done").status_code == 400


def test_other_tenant_cannot_touch_booking(client, db, booking):
    make_tenant(db, slug="other")
    assert _patch(client, booking.id, "confirmed", tenant="other").status_code == 404


def test_delete_cancels(client, booking):
    resp = client.delete(f"/bookings/{booking.id}", params={"tenant": "acme"})

    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
