from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from airjump.children import utc_today
from airjump.config import AppConfig
from airjump.main import app
from airjump.routes.alerts import CreateAlertPayload, create_alert_endpoint, list_alerts_endpoint
from airjump.routes.parties import quote_party
from airjump.supabase import get_auth_context

from .supabase_fakes import (
    ADMIN_ID,
    CHILD_ID,
    PARENT_ID,
    SESSION_ID,
    FakeSupabase,
    child_row,
    make_auth,
    session_row,
)

client = TestClient(app)


@pytest.fixture
def as_user():
    def _install(fake: FakeSupabase, *, role: str = "parent"):
        user_id = ADMIN_ID if role == "admin" else PARENT_ID
        auth = make_auth(fake, role=role, user_id=user_id)
        app.dependency_overrides[get_auth_context] = lambda: auth
        return auth

    yield _install
    app.dependency_overrides.clear()


def test_health() -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_requests_without_token_are_unauthorized() -> None:
    resp = client.get("/api/v1/children")
    assert resp.status_code == 401


def test_parent_is_denied_admin_routes(as_user) -> None:
    as_user(FakeSupabase())
    resp = client.get("/api/v1/admin/sessions/active")
    assert resp.status_code == 403


def test_profile_update_trims_fields(as_user) -> None:
    fake = FakeSupabase(
        update_queue={
            "profiles": [[{"id": PARENT_ID, "full_name": "Maria S.", "phone": None, "role": "parent"}]]
        }
    )
    as_user(fake)

    resp = client.patch("/api/v1/profile", json={"full_name": " Maria S. ", "phone": "  "})

    assert resp.status_code == 200
    assert resp.json()["full_name"] == "Maria S."
    _, _, payload, params = fake.calls_for("update", "profiles")[0]
    assert payload["full_name"] == "Maria S."
    assert payload["phone"] is None
    assert params["id"] == f"eq.{PARENT_ID}"


def test_parent_issues_qr_for_own_child(as_user) -> None:
    fake = FakeSupabase(
        select_queue={"children": [[child_row()]]},
        insert_queue={"qr_sessions": [[session_row()]]},
    )
    as_user(fake)

    resp = client.post(f"/api/v1/children/{CHILD_ID}/qr", json={})

    assert resp.status_code == 200
    assert resp.json()["id"] == SESSION_ID
    _, _, params = fake.calls_for("select", "children")[0]
    assert params["parent_id"] == f"eq.{PARENT_ID}"


def test_qr_issue_rejects_malformed_child_id(as_user) -> None:
    as_user(FakeSupabase())
    resp = client.post("/api/v1/children/not-a-uuid/qr", json={})
    assert resp.status_code == 400


def test_qr_image_hidden_from_other_parents(as_user) -> None:
    other_parent = "55555555-5555-4555-8555-555555555555"
    fake = FakeSupabase(select_queue={"qr_sessions": [[session_row(parent_id=other_parent)]]})
    as_user(fake)

    resp = client.get(f"/api/v1/sessions/{SESSION_ID}/qr.png")

    assert resp.status_code == 404


def test_qr_image_served_to_owner(as_user) -> None:
    fake = FakeSupabase(select_queue={"qr_sessions": [[session_row()]]})
    as_user(fake)

    resp = client.get(f"/api/v1/sessions/{SESSION_ID}/qr.png")

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.content.startswith(b"\x89PNG")


def test_admin_validate_reports_bad_format(as_user) -> None:
    as_user(FakeSupabase(), role="admin")

    resp = client.post("/api/v1/admin/scan/validate", json={"token": "hello"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["valid"] is False
    assert body["reason"] == "invalid_format"


def test_admin_check_out_of_pending_session_conflicts(as_user) -> None:
    as_user(FakeSupabase(select_queue={"qr_sessions": [[session_row()]]}), role="admin")

    resp = client.post(f"/api/v1/admin/sessions/{SESSION_ID}/check-out")

    assert resp.status_code == 409


def test_quote_party_uses_package_price() -> None:
    config = AppConfig()
    assert quote_party("premium", 20, "15:00", config) == 649


@pytest.mark.parametrize(
    "package_type, guests, slot",
    [
        ("mega", 5, "15:00"),
        ("basic", 11, "15:00"),
        ("basic", 5, "21:00"),
        ("basic", 0, "15:00"),
    ],
)
def test_quote_party_rejects_unbookable_requests(package_type, guests, slot) -> None:
    with pytest.raises(ValueError):
        quote_party(package_type, guests, slot, AppConfig())


def test_party_booking_is_pending_with_package_price(as_user) -> None:
    party_date = utc_today() + timedelta(days=14)
    created = {
        "id": "66666666-6666-4666-8666-666666666666",
        "parent_id": PARENT_ID,
        "child_name": "Ana",
        "date": party_date.isoformat(),
        "time": "16:00",
        "guests": 12,
        "package_type": "standard",
        "total_price": 449,
        "status": "pending",
    }
    fake = FakeSupabase(insert_queue={"party_bookings": [[created]]})
    as_user(fake)

    resp = client.post(
        "/api/v1/parties",
        json={
            "child_name": "Ana",
            "date": party_date.isoformat(),
            "time": "16:00",
            "guests": 12,
            "package_type": "standard",
        },
    )

    assert resp.status_code == 200
    assert resp.json()["status"] == "pending"
    _, _, payload, _ = fake.calls_for("insert", "party_bookings")[0]
    assert payload["total_price"] == 449
    assert payload["parent_id"] == PARENT_ID


def test_party_over_capacity_is_rejected(as_user) -> None:
    fake = FakeSupabase()
    as_user(fake)

    resp = client.post(
        "/api/v1/parties",
        json={
            "child_name": "Ana",
            "date": (utc_today() + timedelta(days=3)).isoformat(),
            "time": "16:00",
            "guests": 30,
            "package_type": "deluxe",
        },
    )

    assert resp.status_code == 400
    assert fake.calls == []


def test_party_in_the_past_is_rejected(as_user) -> None:
    fake = FakeSupabase()
    as_user(fake)

    resp = client.post(
        "/api/v1/parties",
        json={
            "child_name": "Ana",
            "date": (utc_today() - timedelta(days=1)).isoformat(),
            "time": "16:00",
            "guests": 8,
            "package_type": "basic",
        },
    )

    assert resp.status_code == 400
    assert fake.calls == []


def test_admin_confirms_party(as_user) -> None:
    booking_id = "66666666-6666-4666-8666-666666666666"
    confirmed = {
        "id": booking_id,
        "parent_id": PARENT_ID,
        "child_name": "Ana",
        "date": (utc_today() + timedelta(days=10)).isoformat(),
        "time": "15:00",
        "guests": 10,
        "package_type": "basic",
        "total_price": 299,
        "status": "confirmed",
    }
    fake = FakeSupabase(update_queue={"party_bookings": [[confirmed]]})
    as_user(fake, role="admin")

    resp = client.patch(f"/api/v1/admin/parties/{booking_id}", json={"status": "confirmed"})

    assert resp.status_code == 200
    assert resp.json()["status"] == "confirmed"
    _, _, payload, params = fake.calls_for("update", "party_bookings")[0]
    assert payload["status"] == "confirmed"
    assert params == {"id": f"eq.{booking_id}"}


def test_admin_update_of_unknown_party_is_not_found(as_user) -> None:
    as_user(FakeSupabase(), role="admin")

    resp = client.patch(
        "/api/v1/admin/parties/66666666-6666-4666-8666-666666666666",
        json={"status": "cancelled"},
    )

    assert resp.status_code == 404


def test_admin_cannot_reset_party_to_pending(as_user) -> None:
    fake = FakeSupabase()
    as_user(fake, role="admin")

    resp = client.patch(
        "/api/v1/admin/parties/66666666-6666-4666-8666-666666666666",
        json={"status": "pending"},
    )

    assert resp.status_code == 400
    assert fake.calls == []


def test_cancel_only_pending_own_booking(as_user) -> None:
    booking_id = "66666666-6666-4666-8666-666666666666"
    fake = FakeSupabase()
    as_user(fake)

    resp = client.post(f"/api/v1/parties/{booking_id}/cancel")

    assert resp.status_code == 409
    _, _, payload, params = fake.calls_for("update", "party_bookings")[0]
    assert payload["status"] == "cancelled"
    assert params["parent_id"] == f"eq.{PARENT_ID}"
    assert params["status"] == "eq.pending"


def test_complaint_ticket_defaults_to_high_priority(as_user) -> None:
    created = {
        "id": "77777777-7777-4777-8777-777777777777",
        "parent_id": PARENT_ID,
        "type": "complaint",
        "subject": "Queue",
        "description": "Waited too long",
        "priority": "high",
        "status": "open",
    }
    fake = FakeSupabase(insert_queue={"support_tickets": [[created]]})
    as_user(fake)

    resp = client.post(
        "/api/v1/support/tickets",
        json={"type": "complaint", "subject": "Queue", "description": "Waited too long"},
    )

    assert resp.status_code == 200
    _, _, payload, _ = fake.calls_for("insert", "support_tickets")[0]
    assert payload["priority"] == "high"
    assert payload["status"] == "open"


def test_admin_ticket_update_requires_changes(as_user) -> None:
    as_user(FakeSupabase(), role="admin")

    resp = client.patch(
        "/api/v1/admin/support/tickets/77777777-7777-4777-8777-777777777777",
        json={},
    )

    assert resp.status_code == 400


def test_admin_ticket_list_filters_by_status(as_user) -> None:
    fake = FakeSupabase(select_queue={"support_tickets": [[]]})
    as_user(fake, role="admin")

    resp = client.get("/api/v1/admin/support/tickets", params={"status": "in_progress"})

    assert resp.status_code == 200
    assert resp.json() == []
    _, _, params = fake.calls_for("select", "support_tickets")[0]
    assert params["status"] == "eq.in_progress"


def test_admin_stats_route(as_user) -> None:
    as_user(FakeSupabase(select_queue={"qr_sessions": [[]]}), role="admin")

    resp = client.get("/api/v1/admin/stats/daily", params={"day": "2025-06-01"})

    assert resp.status_code == 200
    assert resp.json()["day"] == "2025-06-01"
    assert resp.json()["total_entries"] == 0


def test_alert_records_operator_and_default_message() -> None:
    created = {
        "id": "88888888-8888-4888-8888-888888888888",
        "child_id": CHILD_ID,
        "type": "Medical emergency",
        "message": "Medical emergency alert for Pedro Silva",
        "operator_id": ADMIN_ID,
        "status": "active",
    }
    fake = FakeSupabase(
        select_queue={"children": [[child_row()]]},
        insert_queue={"emergency_alerts": [[created]]},
    )
    auth = make_auth(fake, role="admin", user_id=ADMIN_ID)

    alert = asyncio.run(
        create_alert_endpoint(
            CreateAlertPayload(child_id=CHILD_ID, type="Medical emergency"),
            auth=auth,
        )
    )

    assert alert.status.value == "active"
    _, _, payload, _ = fake.calls_for("insert", "emergency_alerts")[0]
    assert payload["operator_id"] == ADMIN_ID
    assert payload["message"] == "Medical emergency alert for Pedro Silva"


def test_alert_for_unknown_child_is_not_found() -> None:
    fake = FakeSupabase(select_queue={"children": [[]]})
    auth = make_auth(fake, role="admin", user_id=ADMIN_ID)

    with pytest.raises(HTTPException) as exc:
        asyncio.run(
            create_alert_endpoint(
                CreateAlertPayload(child_id=CHILD_ID, type="Session ending"),
                auth=auth,
            )
        )

    assert exc.value.status_code == 404


def test_parent_alerts_scoped_to_own_children() -> None:
    fake = FakeSupabase(
        select_queue={
            "children": [[{"id": CHILD_ID}]],
            "emergency_alerts": [[]],
        }
    )

    result = asyncio.run(list_alerts_endpoint(status=None, auth=make_auth(fake)))

    assert result == []
    _, _, params = fake.calls_for("select", "emergency_alerts")[0]
    assert params["child_id"] == f"in.({CHILD_ID})"


def test_parent_without_children_has_no_alerts() -> None:
    fake = FakeSupabase(select_queue={"children": [[]]})

    result = asyncio.run(list_alerts_endpoint(status=None, auth=make_auth(fake)))

    assert result == []
    assert fake.calls_for("select", "emergency_alerts") == []


def test_parent_alerts_filter_by_status(as_user) -> None:
    fake = FakeSupabase(
        select_queue={
            "children": [[{"id": CHILD_ID}]],
            "emergency_alerts": [[]],
        }
    )
    as_user(fake)

    resp = client.get("/api/v1/alerts", params={"status": "active"})

    assert resp.status_code == 200
    _, _, params = fake.calls_for("select", "emergency_alerts")[0]
    assert params["status"] == "eq.active"


def test_admin_resolves_active_alert(as_user) -> None:
    alert_id = "88888888-8888-4888-8888-888888888888"
    resolved = {
        "id": alert_id,
        "child_id": CHILD_ID,
        "type": "Session ending",
        "message": "Session ending alert for Pedro Silva",
        "operator_id": ADMIN_ID,
        "status": "resolved",
        "resolved_at": "2025-06-01T15:30:00+00:00",
    }
    fake = FakeSupabase(update_queue={"emergency_alerts": [[resolved]]})
    as_user(fake, role="admin")

    resp = client.post(f"/api/v1/admin/alerts/{alert_id}/resolve")

    assert resp.status_code == 200
    assert resp.json()["status"] == "resolved"
    _, _, payload, params = fake.calls_for("update", "emergency_alerts")[0]
    assert payload["status"] == "resolved"
    assert payload["resolved_at"]
    assert params == {"id": f"eq.{alert_id}", "status": "eq.active"}


def test_resolving_settled_alert_is_not_found(as_user) -> None:
    as_user(FakeSupabase(), role="admin")

    resp = client.post("/api/v1/admin/alerts/88888888-8888-4888-8888-888888888888/resolve")

    assert resp.status_code == 404
