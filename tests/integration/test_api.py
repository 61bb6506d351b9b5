"""Integration test: HTTP API endpoints."""

import pytest

from netguard.api.routes import API_PREFIX


def url(path: str) -> str:
    return f"{API_PREFIX}{path}"


class TestApi:
    """Tests for the firewall API with a mock-mode NetGuard."""

    @pytest.fixture
    def client(self, guard):
        """Create a test client for the API."""
        from fastapi.testclient import TestClient

        from netguard.api.server import create_app

        app = create_app(guard)
        return TestClient(app)

    def test_health_endpoint(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_health_reports_package_version(self, client):
        from netguard import __version__

        assert client.get("/health").json()["version"] == __version__

    def test_health_model_requires_version(self):
        from pydantic import ValidationError

        from netguard.api.models import HealthResponse

        with pytest.raises(ValidationError):
            HealthResponse()

    def test_pending_when_idle(self, client):
        resp = client.get(url("/pending"))
        assert resp.status_code == 200
        assert resp.json() == {
            "pending": False,
            "seconds_remaining": None,
            "message": "No pending changes.",
            "alert": None,
        }

    def test_toggle_is_protected(self, client, clock):
        resp = client.post(url("/toggle"), json={"enabled": True})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["pending"] is True
        assert data["seconds_remaining"] == 300
        assert data["firewall"]["enabled"] is True
        assert data["firewall"]["input_policy"] == "DROP"

        clock.advance(100)
        pending = client.get(url("/pending")).json()
        assert pending["pending"] is True
        assert pending["seconds_remaining"] == 200
        assert pending["message"] == "Changes pending confirmation. Auto-revert in 200 seconds."

    def test_confirm_scenario(self, client, clock):
        client.post(url("/toggle"), json={"enabled": True})
        clock.advance(150)

        resp = client.post(url("/confirm"))
        assert resp.status_code == 200
        assert resp.json()["pending"] is False

        clock.advance(250)
        assert client.get(url("/pending")).json()["pending"] is False
        status = client.get(url("/status")).json()
        assert status["enabled"] is True
        assert status["input_policy"] == "DROP"
        assert status["pending_changes"] is False

    def test_revert(self, client):
        client.post(url("/toggle"), json={"enabled": True})

        resp = client.post(url("/revert"))

        assert resp.status_code == 200
        assert resp.json()["message"] == "Changes reverted to previous state."
        assert client.get(url("/status")).json()["input_policy"] == "ACCEPT"

    def test_confirm_and_revert_when_idle(self, client):
        for path in ("/confirm", "/revert"):
            resp = client.post(url(path))
            assert resp.status_code == 200
            assert resp.json()["pending"] is False
            assert resp.json()["message"] == "No pending changes."

    def test_status_poll_expires(self, client, clock):
        client.post(url("/blocked-ips/add"), json={"ip": "203.0.113.7"})
        clock.advance(301)

        status = client.get(url("/status")).json()

        assert status["pending_changes"] is False
        assert client.get(url("/blocked-ips")).json() == []

    def test_port_forward_lifecycle(self, client):
        body = {
            "protocol": "tcp",
            "external_port": 8080,
            "internal_ip": "192.168.1.10",
            "internal_port": 80,
        }
        resp = client.post(url("/port-forwards/add"), json=body)
        assert resp.status_code == 200
        assert resp.json()["pending"] is True

        forwards = client.get(url("/port-forwards")).json()
        assert len(forwards) == 1
        assert forwards[0]["internal_ip"] == "192.168.1.10"

        client.post(url("/port-forwards/remove"), json=body)
        assert client.get(url("/port-forwards")).json() == []

        client.post(url("/confirm"))
        assert client.get(url("/port-forwards")).json() == []

    def test_invalid_port_forward(self, client):
        resp = client.post(
            url("/port-forwards/add"),
            json={"protocol": "tcp", "external_port": 70000, "internal_ip": "192.168.1.10", "internal_port": 80},
        )
        assert resp.status_code == 422

        resp = client.post(
            url("/port-forwards/add"),
            json={"protocol": "tcp", "external_port": 80, "internal_ip": "not-an-ip", "internal_port": 80},
        )
        assert resp.status_code == 422

    def test_blocked_ips(self, client):
        resp = client.post(url("/blocked-ips/add"), json={"ip": "203.0.113.7/32"})
        assert resp.status_code == 200
        assert client.get(url("/blocked-ips")).json() == [{"ip": "203.0.113.7", "description": ""}]

        client.post(url("/blocked-ips/remove"), json={"ip": "203.0.113.7"})
        assert client.get(url("/blocked-ips")).json() == []

    def test_dmz(self, client):
        resp = client.post(url("/dmz/set"), json={"enabled": True, "target_ip": "192.168.1.50"})
        assert resp.status_code == 200
        assert client.get(url("/dmz")).json() == {"enabled": True, "target_ip": "192.168.1.50"}

        client.post(url("/dmz/set"), json={"enabled": False})
        assert client.get(url("/dmz")).json()["enabled"] is False

    def test_dmz_requires_target(self, client):
        resp = client.post(url("/dmz/set"), json={"enabled": True})
        assert resp.status_code == 422

    def test_rules_dump(self, client):
        client.post(url("/toggle"), json={"enabled": True})
        rules = client.get(url("/rules")).json()["rules"]
        assert "*filter" in rules
        assert ":INPUT DROP" in rules

    def test_history(self, client):
        client.post(url("/toggle"), json={"enabled": True})
        client.post(url("/confirm"))

        events = client.get(url("/history")).json()

        assert [e["kind"] for e in events[:2]] == ["confirm", "begin"]
        assert events[1]["detail"] == "Enable firewall"


class TestApiErrors:
    """Tests for the error taxonomy over HTTP."""

    @pytest.fixture
    def client(self, guard_config, watchdog, clock):
        from fastapi.testclient import TestClient

        from netguard import NetGuard
        from netguard.api.server import create_app
        from tests.conftest import FlakyTool

        self.tool = FlakyTool()
        self.guard = NetGuard.from_dict(guard_config, tool=self.tool, watchdog=watchdog, clock=clock)
        return TestClient(create_app(self.guard))

    def test_snapshot_failure_is_503(self, client):
        self.tool.fail_dump = True

        resp = client.post(url("/blocked-ips/add"), json={"ip": "203.0.113.7"})

        assert resp.status_code == 503
        assert resp.json()["error"] == "snapshot_failed"
        assert resp.json()["pending"] is False
        assert self.tool.applied == []

    def test_mutation_failure_is_500_and_pending(self, client):
        self.tool.fail_apply_on = "-I"

        resp = client.post(url("/blocked-ips/add"), json={"ip": "203.0.113.7"})

        assert resp.status_code == 500
        data = resp.json()
        assert data["success"] is False
        assert data["pending"] is True
        assert data["error"]
        assert client.get(url("/pending")).json()["pending"] is True

    def test_restore_failure_is_500_with_alert(self, client, clock):
        client.post(url("/toggle"), json={"enabled": True})
        self.tool.fail_load = True

        resp = client.post(url("/revert"))
        assert resp.status_code == 500
        assert resp.json()["error"] == "restore_failed"
        assert resp.json()["pending"] is True

        clock.advance(301)
        pending = client.get(url("/pending")).json()
        assert pending["pending"] is True
        assert pending["alert"]

        resp = client.post(url("/toggle"), json={"enabled": False})
        assert resp.status_code == 409

    def test_scheduling_failure_aborts(self, client, watchdog):
        watchdog.fail = True

        resp = client.post(url("/toggle"), json={"enabled": True})

        assert resp.status_code == 500
        assert resp.json()["error"] == "scheduling_failed"
        assert client.get(url("/status")).json()["input_policy"] == "ACCEPT"
