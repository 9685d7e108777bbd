# ruff: noqa: ANN201, ANN001
import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from kaspa_aio import __version__
from kaspa_aio.main import app

client = TestClient(app)


def _wait_finished(client: TestClient, run_id: str) -> dict:
    for _ in range(500):
        body = client.get(f"/api/install/runs/{run_id}").json()
        if body["finished_at"] is not None:
            return body
        time.sleep(0.01)
    raise AssertionError(f"run {run_id} did not finish")


def test_hello():
    r = client.get("/api/hello")
    assert r.status_code == 200
    assert r.json()["version"] == __version__


def test_catalog():
    r = client.get("/api/catalog")
    assert r.status_code == 200
    body = r.json()
    assert {p["id"] for p in body["profiles"]} >= {"core", "indexer-services", "mining"}
    assert any(s["id"] == "kaspa-node" for s in body["services"])


def test_template_detail():
    r = client.get("/api/catalog/templates/home-node")
    assert r.status_code == 200
    assert r.json()["services"] == ["kaspa-node", "dashboard", "nginx"]


def test_unknown_template_is_404():
    r = client.get("/api/catalog/templates/nope")
    assert r.status_code == 404
    assert r.json()["code"] == "catalog.template.unknown"


def test_resource_check_against_supplied_host():
    r = client.post(
        "/api/resource-check",
        json={"profiles": ["core", "kaspa-user-applications"], "host": {"ram_gb": 1, "cpu_cores": 8, "disk_gb": 500}},
    )
    assert r.status_code == 200
    body = r.json()
    ram = next(c for c in body["checks"] if c["dimension"] == "ram_gb")
    assert ram["status"] == "insufficient"
    assert body["suggestions"][0]["severity"] == "critical"
    nginx = next(a for a in body["attributions"] if a["service"] == "nginx")
    assert nginx["used_by"] == ["core", "kaspa-user-applications"]


def test_resource_check_without_host_returns_totals_only():
    r = client.post("/api/resource-check", json={"profiles": ["core"]})
    assert r.status_code == 200
    assert r.json()["checks"] == []


def test_resource_check_conflicting_profiles():
    r = client.post("/api/resource-check", json={"profiles": ["core", "archive-node"]})
    assert r.status_code == 409
    assert r.json()["code"] == "profile.conflict"


def test_host_resources():
    r = client.get("/api/resources/host")
    assert r.status_code == 200
    assert r.json()["cpu_cores"] >= 1


def test_validate_reports_every_error(app_runtime):
    r = client.post(
        "/api/config/validate",
        json={"config": {"DASHBOARD_PORT": 80, "LEGACY": "x"}, "profiles": ["core"]},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["valid"] is False
    assert [e["key"] for e in body["errors"]] == ["DASHBOARD_PORT"]
    assert body["dropped_keys"] == ["LEGACY"]
    assert body["services"] == ["kaspa-node", "dashboard", "nginx"]
    assert body["config"]["NGINX_HTTP_PORT"] == 8880


def test_validate_with_template(app_runtime):
    r = client.post("/api/config/validate", json={"template": "beginner-setup"})
    assert r.status_code == 200
    assert r.json()["valid"] is True
    assert "kasia-app" in r.json()["services"]


def test_generate_rejects_invalid_config(app_runtime):
    r = client.post("/api/config/generate", json={"config": {"DASHBOARD_PORT": 80}, "profiles": ["core"]})
    assert r.status_code == 400
    body = r.json()
    assert body["code"] == "config.invalid"
    assert body["errors"][0]["key"] == "DASHBOARD_PORT"


def test_generate_returns_artifacts(app_runtime):
    r = client.post("/api/config/generate", json={"profiles": ["indexer-services"]})
    assert r.status_code == 200
    body = r.json()
    assert body["services"][0] == "timescaledb"
    assert "timescaledb:" in body["manifest"]
    assert "POSTGRES_PASSWORD=" in body["secrets_file"]


def test_install_lifecycle_and_versions(app_runtime):
    with TestClient(app) as live:
        r = live.post("/api/install/start", json={"profiles": ["core"], "config": {"KASPA_NODE_LOG_LEVEL": "debug"}})
        assert r.status_code == 202
        run_id = r.json()["id"]

        run = _wait_finished(live, run_id)
        assert run["phase"] == "complete"
        assert live.get("/api/install/active").json() is None
        assert app_runtime.running == {"kaspa-node", "dashboard", "nginx"}

        versions = live.get("/api/versions").json()
        assert [v["id"] for v in versions] == ["v1", "v2"]
        assert live.get("/api/versions/current").json()["id"] == "v2"
        assert [v["id"] for v in live.get("/api/versions/checkpoints").json()] == ["v1"]

        r = live.post("/api/versions/snapshot", json={"label": "manual"})
        assert r.status_code == 201
        snapshot_id = r.json()["id"]
        assert live.get(f"/api/versions/{snapshot_id}").json()["label"] == "manual"

        diff = live.get("/api/versions/diff", params={"a": "v1", "b": "v2"}).json()
        assert diff["profiles_added"] == ["core"]
        assert any(c["key"] == "KASPA_NODE_LOG_LEVEL" and c["new"] == "debug" for c in diff["changes"])

        r = live.post("/api/versions/restore", json={"version_id": "v2"})
        assert r.status_code == 202
        restored = _wait_finished(live, r.json()["id"])
        assert restored["phase"] == "complete"
        assert restored["restored_from"] == "v2"

        r = live.post(f"/api/install/runs/{run_id}/cancel")
        assert r.status_code == 409
        assert r.json()["code"] == "install.run_finished"

        assert live.delete(f"/api/install/runs/{run_id}").status_code == 204
        assert live.get(f"/api/install/runs/{run_id}").status_code == 404


def test_failed_install_reports_phase_and_service(app_runtime):
    app_runtime.fail_start = {"nginx"}
    with TestClient(app) as live:
        run_id = live.post("/api/install/start", json={"template": "home-node"}).json()["id"]
        run = _wait_finished(live, run_id)

    assert run["phase"] == "rolled_back"
    assert run["failure"]["phase"] == "starting_applications"
    assert run["failure"]["service"] == "nginx"
    assert run["failure"]["logs"] == app_runtime.log_lines


def test_unknown_run_and_version(app_runtime):
    r = client.get("/api/install/runs/missing")
    assert r.status_code == 404
    assert r.json()["code"] == "install.run_not_found"

    r = client.get("/api/versions/v42")
    assert r.status_code == 404
    assert r.json()["code"] == "version.not_found"

    r = client.post("/api/versions/snapshot", json={})
    assert r.status_code == 404
    assert r.json()["code"] == "version.empty"


def test_progress_stream_for_unknown_run(app_runtime):
    with client.websocket_connect("/api/ws/install/missing") as ws:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
    assert exc_info.value.code == 4004


def test_progress_stream_starts_with_snapshot(app_runtime):
    with TestClient(app) as live:
        run_id = live.post("/api/install/start", json={"profiles": ["core"]}).json()["id"]

        messages = []
        with live.websocket_connect(f"/api/ws/install/{run_id}") as ws:
            with pytest.raises(WebSocketDisconnect):
                while True:
                    messages.append(ws.receive_json())

        _wait_finished(live, run_id)

    assert messages[0]["type"] == "snapshot"
    assert messages[0]["run_id"] == run_id
    phases = [m["phase"] for m in messages]
    order = [
        "validating",
        "generating_config",
        "acquiring_images",
        "starting_infrastructure",
        "awaiting_infrastructure_health",
        "starting_applications",
        "awaiting_application_health",
        "verifying",
        "complete",
    ]
    ranks = [order.index(p) for p in phases]
    assert ranks == sorted(ranks)
    assert phases[-1] == "complete"
