"""HTTP endpoints for metrics and health."""

import logging
import threading
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import uvicorn
from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse
from uvicorn.config import LOGGING_CONFIG

from rtp_transcriber.backend.runtime.pipeline import TranscriptionPipeline

_ACCESS_LOG_IGNORED_PATHS = frozenset({"/metrics", "/metrics.json", "/health"})
LOGGER = logging.getLogger("rtp_transcriber.http_server")


class _AccessLogPathFilter(logging.Filter):
    """Filter out noisy access logs for scrape endpoints."""

    def __init__(self, ignored_paths: Tuple[str, ...]) -> None:
        super().__init__()
        self._ignored_paths = set(ignored_paths)

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, tuple) and len(record.args) >= 3:
            path = record.args[2]
            if path in self._ignored_paths:
                return False
        return True


def _build_uvicorn_log_config() -> Dict[str, Any]:
    log_config = deepcopy(LOGGING_CONFIG)
    log_config.setdefault("filters", {})
    log_config["filters"]["ignore_internal_endpoints"] = {
        "()": _AccessLogPathFilter,
        "ignored_paths": tuple(sorted(_ACCESS_LOG_IGNORED_PATHS)),
    }
    access_handler = log_config["handlers"].get("access", {})
    access_filters = access_handler.get("filters", [])
    access_handler["filters"] = [*access_filters, "ignore_internal_endpoints"]
    log_config["handlers"]["access"] = access_handler
    return log_config


def _sanitize_metric_name(value: str) -> str:
    sanitized = []
    for ch in value:
        sanitized.append(ch if ch.isalnum() or ch == "_" else "_")
    name = "".join(sanitized) or "metric"
    if name[0].isdigit():
        name = f"m{name}"
    return name


def _flatten_metrics(payload: Dict[str, Any]) -> Dict[str, float]:
    flat: Dict[str, float] = {}
    for key, value in payload.items():
        if value is None:
            continue
        if isinstance(value, (int, float, bool)):
            flat[_sanitize_metric_name(key)] = float(value)
        elif isinstance(value, dict):
            for sub_key, sub_val in value.items():
                if isinstance(sub_val, (int, float, bool)):
                    flat[_sanitize_metric_name(f"{key}_{sub_key}")] = float(sub_val)
    return flat


def prometheus_text(payload: Dict[str, Any]) -> str:
    flat = _flatten_metrics(payload)
    lines: List[str] = []
    for key in sorted(flat.keys()):
        metric_name = f"rtp_transcriber_{key}"
        metric_type = "counter" if key.endswith("_total") else "gauge"
        lines.append(f"# HELP {metric_name} Transcriber metric '{key}'.")
        lines.append(f"# TYPE {metric_name} {metric_type}")
        lines.append(f"{metric_name} {flat[key]}")
    return "\n".join(lines) + "\n"


@dataclass
class HttpServerHandle:
    """Handle for the background HTTP server thread."""

    server: uvicorn.Server
    thread: threading.Thread

    def stop(self, timeout: Optional[float] = None) -> None:
        if self.thread.is_alive():
            self.server.should_exit = True
            self.thread.join(timeout=timeout)


def build_http_app(pipeline: TranscriptionPipeline) -> FastAPI:
    app = FastAPI()
    metrics = pipeline.metrics

    @app.get("/metrics")
    def metrics_endpoint() -> Response:
        text = prometheus_text(metrics.render())
        return Response(content=text, media_type="text/plain; version=0.0.4")

    @app.get("/metrics.json")
    def metrics_json_endpoint() -> JSONResponse:
        return JSONResponse(metrics.render(), status_code=200)

    @app.get("/health")
    def health_endpoint() -> JSONResponse:
        snapshot = pipeline.health_snapshot()
        healthy = bool(snapshot.get("streaming")) and not snapshot.get("closed")
        status = 200 if healthy else 503
        payload = {"status": "ok" if healthy else "error", **snapshot}
        return JSONResponse(payload, status_code=status)

    return app


def start_http_server(
    pipeline: TranscriptionPipeline, host: str, port: int
) -> HttpServerHandle:
    """Serve /metrics and /health from a daemon thread."""
    app = build_http_app(pipeline)
    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info",
        log_config=_build_uvicorn_log_config(),
    )
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, name="http-server", daemon=True)
    thread.start()
    LOGGER.info("Observability server listening on %s:%d", host, port)
    return HttpServerHandle(server=server, thread=thread)


__all__ = ["HttpServerHandle", "build_http_app", "prometheus_text", "start_http_server"]
