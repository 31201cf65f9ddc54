from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from asr_bridge.backend.endpoints.http import build_observability_app
from asr_bridge.backend.runtime.metrics import Metrics


def _state(shutting_down=False, active_workers=2):
    """Helper for a process-state stand-in."""
    state = MagicMock()
    state.shutting_down = shutting_down
    state.active_workers = active_workers
    return state


def test_metrics_endpoint_renders_text():
    metrics = Metrics()
    metrics.increase_active_sessions()
    client = TestClient(build_observability_app(metrics, _state()))

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "active_sessions 1" in response.text
    assert "active_workers 2" in response.text


def test_health_ok_while_running():
    client = TestClient(build_observability_app(Metrics(), _state()))
    response = client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["active_workers"] == 2


def test_health_reports_shutdown():
    client = TestClient(build_observability_app(Metrics(), _state(shutting_down=True)))
    response = client.get("/health")
    assert response.status_code == 503
    assert response.json()["status"] == "shutting_down"
