"""
Integration tests for the admin alert API.

Endpoints tested:
- POST /api/v1/admin/alerts
- GET/PATCH /api/v1/admin/alerts/{id}
- POST /api/v1/admin/alerts/{id}/archive
- GET /api/v1/admin/alerts/{id}/deliveries
- POST /api/v1/admin/reminders/run, GET /api/v1/admin/reminders/status
- GET /api/v1/admin/analytics
"""
import asyncio

from alerting.models.alert import Alert
from alerting.models.alert_audit_log import AlertAuditLog
from alerting.models.notification_delivery import NotificationDelivery
from alerting.models.user_alert_preference import UserAlertPreference
from tests.conftest import make_alert, make_team, make_user

API = "/api/v1/admin"


def _headers(user):
    return {"X-User-Id": user.id}


def _payload(**overrides):
    payload = {
        "title": "Scheduled maintenance",
        "message": "The VPN gateway will be offline from 22:00 to 23:00 UTC.",
        "severity": "Warning",
        "visibility": {"type": "Organization", "target_ids": []},
    }
    payload.update(overrides)
    return payload


class TestAccessControl:
    def test_missing_header_is_401(self, client):
        response = client.post(f"{API}/alerts", json=_payload())
        assert response.status_code == 401

    def test_unknown_user_is_401(self, client):
        response = client.get(f"{API}/analytics", headers={"X-User-Id": "nobody"})
        assert response.status_code == 401

    def test_non_admin_is_403(self, client, member):
        response = client.post(f"{API}/alerts", json=_payload(), headers=_headers(member))
        assert response.status_code == 403
        assert response.json()["detail"] == "Admin role required"


class TestCreateAlert:
    """Tests for POST /admin/alerts"""

    def test_create_org_alert(self, client, db_session, admin, member):
        response = client.post(f"{API}/alerts", json=_payload(), headers=_headers(admin))

        assert response.status_code == 201
        data = response.json()
        assert data["title"] == "Scheduled maintenance"
        assert data["severity"] == "Warning"
        assert data["status"] == "active"
        assert data["created_by"] == admin.id
        assert data["visibility"] == {"type": "Organization", "target_ids": []}

        # Every active user gets a preference and an in-app delivery
        prefs = db_session.query(UserAlertPreference).filter_by(alert_id=data["id"]).all()
        assert sorted(p.user_id for p in prefs) == sorted([admin.id, member.id])
        assert db_session.query(NotificationDelivery).filter_by(alert_id=data["id"]).count() == 2
        assert db_session.query(AlertAuditLog).filter_by(alert_id=data["id"], action="created").count() == 1

    def test_create_team_alert(self, client, db_session, admin):
        team = make_team(db_session)
        on_team = make_user(db_session, team_id=team.id)
        make_user(db_session)

        response = client.post(
            f"{API}/alerts",
            json=_payload(visibility={"type": "Team", "target_ids": [team.id]}),
            headers=_headers(admin),
        )

        assert response.status_code == 201
        prefs = db_session.query(UserAlertPreference).filter_by(alert_id=response.json()["id"]).all()
        assert [p.user_id for p in prefs] == [on_team.id]

    def test_unknown_target_is_400(self, client, admin):
        response = client.post(
            f"{API}/alerts",
            json=_payload(visibility={"type": "User", "target_ids": ["ghost"]}),
            headers=_headers(admin),
        )

        assert response.status_code == 400
        assert response.json()["missing_ids"] == ["ghost"]

    def test_schema_errors_are_422(self, client, admin):
        assert client.post(f"{API}/alerts", json=_payload(title="ab"), headers=_headers(admin)).status_code == 422
        assert client.post(
            f"{API}/alerts", json=_payload(reminder_frequency_minutes=0), headers=_headers(admin)
        ).status_code == 422
        assert client.post(
            f"{API}/alerts",
            json=_payload(visibility={"type": "Team", "target_ids": []}),
            headers=_headers(admin),
        ).status_code == 422

    def test_expiry_before_start_is_422(self, client, admin):
        response = client.post(
            f"{API}/alerts",
            json=_payload(start_time="2024-01-15T10:00:00Z", expiry_time="2024-01-15T09:00:00Z"),
            headers=_headers(admin),
        )
        assert response.status_code == 422


class TestReadUpdateArchive:
    """Tests for GET/PATCH/archive on a single alert"""

    def test_get_alert(self, client, db_session, admin):
        alert = make_alert(db_session, title="Office closed")
        response = client.get(f"{API}/alerts/{alert.id}", headers=_headers(admin))
        assert response.status_code == 200
        assert response.json()["title"] == "Office closed"

    def test_get_missing_alert_is_404(self, client, admin):
        response = client.get(f"{API}/alerts/does-not-exist", headers=_headers(admin))
        assert response.status_code == 404
        assert response.json()["alert_id"] == "does-not-exist"

    def test_patch_alert(self, client, db_session, admin):
        alert = make_alert(db_session, severity="Info")

        response = client.patch(
            f"{API}/alerts/{alert.id}",
            json={"severity": "Critical", "reminder_frequency_minutes": 30},
            headers=_headers(admin),
        )

        assert response.status_code == 200
        assert response.json()["severity"] == "Critical"
        assert response.json()["reminder_frequency_minutes"] == 30
        db_session.expire_all()
        assert db_session.query(Alert).filter_by(id=alert.id).one().severity == "Critical"

    def test_null_field_patch_is_422(self, client, db_session, admin):
        alert = make_alert(db_session, title="Original title")
        response = client.patch(
            f"{API}/alerts/{alert.id}",
            json={"title": None, "severity": "Critical"},
            headers=_headers(admin),
        )
        assert response.status_code == 422
        db_session.expire_all()
        stored = db_session.query(Alert).filter_by(id=alert.id).one()
        assert stored.title == "Original title"
        assert stored.severity != "Critical"

    def test_empty_patch_is_400(self, client, db_session, admin):
        alert = make_alert(db_session)
        response = client.patch(f"{API}/alerts/{alert.id}", json={}, headers=_headers(admin))
        assert response.status_code == 400

    def test_archive_then_patch_is_400(self, client, db_session, admin):
        alert = make_alert(db_session)

        archived = client.post(f"{API}/alerts/{alert.id}/archive", headers=_headers(admin))
        assert archived.status_code == 200
        assert archived.json()["status"] == "archived"
        assert archived.json()["is_active"] is False

        response = client.patch(f"{API}/alerts/{alert.id}", json={"title": "New title"}, headers=_headers(admin))
        assert response.status_code == 400

    def test_delivery_stats(self, client, admin):
        created = client.post(f"{API}/alerts", json=_payload(), headers=_headers(admin)).json()

        response = client.get(f"{API}/alerts/{created['id']}/deliveries", headers=_headers(admin))

        assert response.status_code == 200
        assert response.json()["total_recipients"] == 1
        assert response.json()["delivered"] == 1

    def test_delivery_stats_missing_alert_is_404(self, client, admin):
        assert client.get(f"{API}/alerts/nope/deliveries", headers=_headers(admin)).status_code == 404


class TestReminderEndpoints:
    """Tests for the manual reminder run and scheduler status"""

    def test_manual_run(self, client, admin, sweep):
        response = client.post(f"{API}/reminders/run", headers=_headers(admin))

        assert response.status_code == 200
        body = response.json()
        assert body["skipped"] is False
        assert body["result"]["alerts_scanned"] == 2
        assert body["result"]["reminders_sent"] == 1
        sweep.assert_awaited_once()

    def test_manual_run_skipped_while_sweep_in_flight(self, client, admin):
        scheduler = client.app.state.reminder_scheduler
        scheduler._lock = _HeldLock()

        response = client.post(f"{API}/reminders/run", headers=_headers(admin))

        assert response.json() == {"skipped": True, "result": None}

    def test_status(self, client, admin):
        client.post(f"{API}/reminders/run", headers=_headers(admin))

        response = client.get(f"{API}/reminders/status", headers=_headers(admin))

        assert response.status_code == 200
        status = response.json()
        assert status["running"] is False
        assert status["last_status"] == "success"
        assert status["cron_expression"] == "0 */2 * * *"

    def test_scheduler_missing_is_503(self, client, admin):
        client.app.state.reminder_scheduler = None
        assert client.get(f"{API}/reminders/status", headers=_headers(admin)).status_code == 503


class _HeldLock(asyncio.Lock):
    """A lock that always reports itself as held."""

    def locked(self):
        return True


def test_analytics(client, db_session, admin):
    make_alert(db_session, severity="Critical")
    make_alert(db_session, severity="Info", status="archived", is_active=False)

    response = client.get(f"{API}/analytics", headers=_headers(admin))

    assert response.status_code == 200
    data = response.json()
    assert data["total_alerts"] == 2
    assert data["active_alerts"] == 1
    assert data["archived_alerts"] == 1
    assert data["severity_breakdown"]["Critical"] == 1
