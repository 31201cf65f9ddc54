import threading
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse

from asr_bridge.backend.runtime.metrics import Metrics

if TYPE_CHECKING:
    from asr_bridge.backend.application.process_state import ProcessState


def build_observability_app(metrics: Metrics, state: "ProcessState") -> FastAPI:
    """Build the FastAPI app serving /metrics and /health."""
    app = FastAPI()

    @app.get("/metrics")
    def metrics_endpoint() -> Response:
        body = metrics.render() + f"active_workers {state.active_workers}\n"
        return Response(content=body, media_type="text/plain")

    @app.get("/health")
    def health_endpoint() -> JSONResponse:
        snapshot = metrics.snapshot()
        snapshot["active_workers"] = state.active_workers
        snapshot["shutting_down"] = state.shutting_down
        healthy = not state.shutting_down
        status = 200 if healthy else 503
        payload = {"status": "ok" if healthy else "shutting_down", **snapshot}
        return JSONResponse(payload, status_code=status)

    return app


def start_observability_server(
    metrics: Metrics,
    state: "ProcessState",
    host: str,
    port: int,
) -> threading.Thread:
    """Start FastAPI app for /metrics and /health in a background thread."""
    app = build_observability_app(metrics, state)

    def run_server() -> None:
        uvicorn.run(app, host=host, port=port, log_level="warning")

    thread = threading.Thread(target=run_server, name="asr-observability", daemon=True)
    thread.start()
    return thread
