"""Tests for admin user management, statistics and maintenance endpoints."""
from datetime import datetime, timezone

from student_events.models.event import Event
from student_events.models.otp import OTPPurpose
from student_events.services import otp_service
from tests.conftest import create_admin, create_approved_event, register_student, registration_payload


def _setup(client, mailer, session_factory):
    admin = create_admin(client, session_factory)
    sam = register_student(client, mailer, "sam@campus.edu", first_name="Sam")
    kim = register_student(client, mailer, "kim@campus.edu", first_name="Kim", student_id="K42")
    return admin, sam, kim


class TestUserManagement:

    def test_list_and_filter(self, client, mailer, session_factory):
        admin, _, _ = _setup(client, mailer, session_factory)
        client.post("/api/auth/register", json=registration_payload("new@campus.edu", first_name="Newt"))
        headers = admin["headers"]

        assert len(client.get("/api/admin/users", headers=headers).json()) == 4
        students = client.get("/api/admin/users?role=student", headers=headers).json()
        assert {u["email"] for u in students} == {"sam@campus.edu", "kim@campus.edu", "new@campus.edu"}

        found = client.get("/api/admin/users?search=k42", headers=headers).json()
        assert [u["email"] for u in found] == ["kim@campus.edu"]

        inactive = client.get("/api/admin/users?is_active=false", headers=headers).json()
        assert [u["email"] for u in inactive] == ["new@campus.edu"]

    def test_admin_only(self, client, mailer, session_factory):
        _, sam, _ = _setup(client, mailer, session_factory)
        resp = client.get("/api/admin/users", headers=sam["headers"])
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "ADMIN_REQUIRED"
        assert client.get("/api/admin/stats").status_code == 401

    def test_user_detail(self, client, mailer, session_factory):
        admin, sam, kim = _setup(client, mailer, session_factory)
        event = create_approved_event(client, sam["headers"], admin["headers"])
        client.post(f"/api/rsvp/{event['event_id']}", json={}, headers=kim["headers"])

        detail = client.get(f"/api/admin/users/{sam['user']['user_id']}", headers=admin["headers"]).json()
        assert detail["user"]["email"] == "sam@campus.edu"
        assert detail["stats"] == {"events_created": 1, "attending_rsvps": 0}

        detail = client.get(f"/api/admin/users/{kim['user']['user_id']}", headers=admin["headers"]).json()
        assert detail["stats"] == {"events_created": 0, "attending_rsvps": 1}

        resp = client.get("/api/admin/users/missing", headers=admin["headers"])
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "USER_NOT_FOUND"

    def test_status_change(self, client, mailer, session_factory):
        admin, sam, _ = _setup(client, mailer, session_factory)
        url = f"/api/admin/users/{sam['user']['user_id']}/status"

        resp = client.patch(url, json={"is_active": False}, headers=admin["headers"])
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False
        assert client.post(
            "/api/auth/login", json={"email": "sam@campus.edu", "password": "Passw0rd"},
        ).status_code == 403

        client.patch(url, json={"is_active": True}, headers=admin["headers"])
        assert client.get("/api/auth/me", headers=sam["headers"]).status_code == 200

    def test_promotion_cancels_attendance(self, client, mailer, session_factory):
        """A student promoted to admin gives up every seat they held."""
        admin, sam, kim = _setup(client, mailer, session_factory)
        event = create_approved_event(client, sam["headers"], admin["headers"])
        event_url = f"/api/events/{event['event_id']}"
        client.post(f"/api/rsvp/{event['event_id']}", json={"number_of_guests": 2}, headers=kim["headers"])
        client.post(f"/api/rsvp/{event['event_id']}", json={}, headers=sam["headers"])
        assert client.get(event_url).json()["current_attendees"] == 4

        resp = client.patch(
            f"/api/admin/users/{kim['user']['user_id']}/role", json={"role": "admin"}, headers=admin["headers"],
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "admin"

        assert client.get(event_url).json()["current_attendees"] == 1
        detail = client.get(f"/api/admin/users/{kim['user']['user_id']}", headers=admin["headers"]).json()
        assert detail["stats"]["attending_rsvps"] == 0
        stats = client.get("/api/admin/stats", headers=admin["headers"]).json()
        assert stats["rsvps"] == {"total": 2, "attending": 1, "cancelled": 1}

        resp = client.post(f"/api/rsvp/{event['event_id']}", json={}, headers=kim["headers"])
        assert resp.json()["error"]["code"] == "ADMIN_CANNOT_RSVP"
        assert client.get("/api/admin/users", headers=kim["headers"]).status_code == 200
        reconcile = client.post("/api/admin/maintenance/reconcile-attendance", headers=admin["headers"]).json()
        assert reconcile["corrected"] == []

    def test_cannot_modify_self(self, client, mailer, session_factory):
        admin, _, _ = _setup(client, mailer, session_factory)
        admin_id = admin["user"]["user_id"]
        for method, url, body in (
            ("patch", f"/api/admin/users/{admin_id}/status", {"is_active": False}),
            ("patch", f"/api/admin/users/{admin_id}/role", {"role": "student"}),
            ("delete", f"/api/admin/users/{admin_id}", None),
        ):
            kwargs = {"headers": admin["headers"]}
            if body is not None:
                kwargs["json"] = body
            resp = getattr(client, method)(url, **kwargs)
            assert resp.status_code == 400, url
            assert resp.json()["error"]["code"] == "CANNOT_MODIFY_SELF"

    def test_delete_user_releases_seats(self, client, mailer, session_factory):
        """Deleting an account removes its events and RSVPs and frees the seats it held elsewhere."""
        admin, sam, kim = _setup(client, mailer, session_factory)
        sams_event = create_approved_event(client, sam["headers"], admin["headers"], title="Sam's Party")
        kims_event = create_approved_event(client, kim["headers"], admin["headers"], title="Kim's Talk")
        client.post(f"/api/rsvp/{sams_event['event_id']}", json={}, headers=kim["headers"])
        client.post(f"/api/rsvp/{kims_event['event_id']}", json={"number_of_guests": 2}, headers=sam["headers"])
        client.post(f"/api/rsvp/{kims_event['event_id']}", json={}, headers=kim["headers"])

        resp = client.delete(f"/api/admin/users/{sam['user']['user_id']}", headers=admin["headers"])
        assert resp.status_code == 200

        assert client.get(f"/api/events/{sams_event['event_id']}").status_code == 404
        assert client.get(f"/api/events/{kims_event['event_id']}").json()["current_attendees"] == 1
        mine = client.get("/api/rsvp/my-rsvps", headers=kim["headers"]).json()
        assert [r["event"]["title"] for r in mine] == ["Kim's Talk"]
        resp = client.get("/api/auth/me", headers=sam["headers"])
        assert resp.json()["error"]["code"] == "USER_NOT_FOUND"

        reconcile = client.post("/api/admin/maintenance/reconcile-attendance", headers=admin["headers"]).json()
        assert reconcile["corrected"] == []


class TestStatsAndMaintenance:

    def test_system_stats(self, client, mailer, session_factory):
        admin, sam, kim = _setup(client, mailer, session_factory)
        event = create_approved_event(client, sam["headers"], admin["headers"])
        client.post(f"/api/rsvp/{event['event_id']}", json={"number_of_guests": 1}, headers=kim["headers"])
        client.post(f"/api/rsvp/{event['event_id']}", json={}, headers=sam["headers"])
        client.delete(f"/api/rsvp/{event['event_id']}", headers=sam["headers"])

        stats = client.get("/api/admin/stats", headers=admin["headers"]).json()
        assert stats["users"] == {"total": 3, "active": 3, "students": 2, "admins": 1}
        assert stats["events"]["total_events"] == 1
        assert stats["events"]["total_attendees"] == 2
        assert stats["rsvps"] == {"total": 2, "attending": 1, "cancelled": 1}

    def test_sweep_otps(self, client, mailer, session_factory):
        admin, _, _ = _setup(client, mailer, session_factory)
        session = session_factory()
        try:
            otp_service.issue(
                session, "stale@campus.edu", OTPPurpose.login, now=datetime(2020, 1, 1, tzinfo=timezone.utc),
            )
        finally:
            session.close()

        resp = client.post("/api/admin/maintenance/sweep-otps", headers=admin["headers"])
        assert resp.status_code == 200
        assert resp.json() == {"removed": 1}
        assert client.post("/api/admin/maintenance/sweep-otps", headers=admin["headers"]).json() == {"removed": 0}

    def test_reconcile_attendance(self, client, mailer, session_factory):
        admin, sam, kim = _setup(client, mailer, session_factory)
        event = create_approved_event(client, sam["headers"], admin["headers"])
        client.post(f"/api/rsvp/{event['event_id']}", json={"number_of_guests": 3}, headers=kim["headers"])

        session = session_factory()
        try:
            session.query(Event).filter(Event.event_id == event["event_id"]).update({Event.current_attendees: 11})
            session.commit()
        finally:
            session.close()

        resp = client.post(
            f"/api/admin/maintenance/reconcile-attendance?event_id={event['event_id']}", headers=admin["headers"],
        )
        assert resp.status_code == 200
        assert resp.json()["corrected"] == [{"event_id": event["event_id"], "cached": 11, "actual": 4}]
        assert client.get(f"/api/events/{event['event_id']}").json()["current_attendees"] == 4
