"""
Middleware for the wind server API.

Provides:
- Request ID tracking (X-Request-ID)
- Structured JSON request logging
- Sanitized 500 responses
- In-memory request and harvest metrics (Prometheus text format)
"""
import re
import time
import uuid
import logging
import json
import threading
from typing import Callable, Optional
from contextvars import ContextVar
from datetime import datetime

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse
from fastapi import FastAPI

# Context variable for request ID (thread-safe)
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_ctx.get()


class StructuredLogger:
    """
    JSON-lines logger.

    Every entry carries a timestamp, level, service name and the current
    request ID so log aggregation can correlate a query end to end.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _log(self, level: str, message: str, **kwargs):
        log_entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": level,
            "message": message,
            "service": "windserver",
            "request_id": get_request_id(),
            **kwargs
        }
        log_entry = {k: v for k, v in log_entry.items() if v is not None}
        getattr(self.logger, level.lower())(json.dumps(log_entry))

    def info(self, message: str, **kwargs):
        self._log("INFO", message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log("WARNING", message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log("ERROR", message, **kwargs)

    def debug(self, message: str, **kwargs):
        self._log("DEBUG", message, **kwargs)


structured_logger = StructuredLogger("windserver.http")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Accepts or generates an X-Request-ID and echoes it on the response."""

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
            response.headers[self.HEADER_NAME] = request_id
            return response
        finally:
            request_id_ctx.reset(token)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with status and duration."""

    # Probes and scrapes are too chatty to log
    EXCLUDED_PATHS = {"/pulse", "/alive", "/metrics", "/api/health"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"

        try:
            response = await call_next(request)
        except Exception as e:
            structured_logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                client_ip=client_ip,
            )
            raise

        structured_logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            query=str(request.query_params) if request.query_params else None,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            client_ip=client_ip,
        )
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Turns unhandled exceptions into a JSON 500 with the request ID.

    Full details are returned only in debug mode.
    """

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            request_id = get_request_id()
            structured_logger.error(
                "Unhandled exception",
                error=str(e),
                error_type=type(e).__name__,
                path=request.url.path,
                method=request.method,
            )
            detail = str(e) if self.debug else "An internal error occurred."
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal Server Error",
                    "detail": detail,
                    "request_id": request_id,
                },
                headers={"X-Request-ID": request_id} if request_id else {},
            )


class MetricsCollector:
    """
    In-memory counters for requests and the harvest pipeline.

    Request counters are keyed ``method:path:status``. Harvest events are
    fed by the HarvestEngine listener hook; sweep results and the artifact
    count by the poll scheduler.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.request_count: dict = {}
        self.request_duration_sum: dict = {}
        self.harvest_events: dict = {}
        self.harvest_outcomes: dict = {}
        self.artifacts_deleted_total = 0
        self.artifact_count = 0
        self.start_time = datetime.utcnow()

    def record_request(self, method: str, path: str, status_code: int, duration_seconds: float):
        key = f"{method}:{path}:{status_code}"
        with self._lock:
            self.request_count[key] = self.request_count.get(key, 0) + 1
            self.request_duration_sum[key] = self.request_duration_sum.get(key, 0.0) + duration_seconds

    def record_harvest_event(self, event: str, stamp=None):
        with self._lock:
            self.harvest_events[event] = self.harvest_events.get(event, 0) + 1

    def record_harvest_outcome(self, outcome: str):
        with self._lock:
            self.harvest_outcomes[outcome] = self.harvest_outcomes.get(outcome, 0) + 1

    def record_sweep(self, deleted: int, remaining: int):
        with self._lock:
            self.artifacts_deleted_total += deleted
            self.artifact_count = remaining

    def get_metrics(self) -> dict:
        with self._lock:
            return {
                "uptime_seconds": (datetime.utcnow() - self.start_time).total_seconds(),
                "requests": {
                    "total": sum(self.request_count.values()),
                    "by_endpoint": dict(self.request_count),
                },
                "harvest": {
                    "events": dict(self.harvest_events),
                    "outcomes": dict(self.harvest_outcomes),
                },
                "artifacts": {
                    "count": self.artifact_count,
                    "deleted_total": self.artifacts_deleted_total,
                },
            }

    def get_prometheus_metrics(self) -> str:
        """Metrics in Prometheus exposition format."""
        m = self.get_metrics()
        lines = [
            "# HELP windserver_uptime_seconds Time since service start",
            "# TYPE windserver_uptime_seconds gauge",
            f"windserver_uptime_seconds {m['uptime_seconds']}",
            "# HELP windserver_requests_total Total request count",
            "# TYPE windserver_requests_total counter",
        ]
        for key, count in m["requests"]["by_endpoint"].items():
            method, path, status = key.split(":")
            lines.append(f'windserver_requests_total{{method="{method}",path="{path}",status="{status}"}} {count}')

        lines.append("# HELP windserver_harvest_events_total Harvest pipeline events")
        lines.append("# TYPE windserver_harvest_events_total counter")
        for event, count in m["harvest"]["events"].items():
            lines.append(f'windserver_harvest_events_total{{event="{event}"}} {count}')

        lines.append("# HELP windserver_harvest_runs_total Harvest invocations by outcome")
        lines.append("# TYPE windserver_harvest_runs_total counter")
        for outcome, count in m["harvest"]["outcomes"].items():
            lines.append(f'windserver_harvest_runs_total{{outcome="{outcome}"}} {count}')

        lines.append("# HELP windserver_artifacts Servable artifacts on disk")
        lines.append("# TYPE windserver_artifacts gauge")
        lines.append(f"windserver_artifacts {m['artifacts']['count']}")
        lines.append("# HELP windserver_artifacts_deleted_total Artifacts removed by retention")
        lines.append("# TYPE windserver_artifacts_deleted_total counter")
        lines.append(f"windserver_artifacts_deleted_total {m['artifacts']['deleted_total']}")
        return "\n".join(lines) + "\n"


metrics_collector = MetricsCollector()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collects request metrics."""

    EXCLUDED_PATHS = {"/metrics"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        metrics_collector.record_request(
            method=request.method,
            path=_normalize_path(request.url.path),
            status_code=response.status_code,
            duration_seconds=time.perf_counter() - start_time,
        )
        return response


def _normalize_path(path: str) -> str:
    # Colons would break the request_count key format
    return re.sub(r"[:\s]", "_", path)


def setup_middleware(app: FastAPI, debug: bool = False):
    """
    Configure middleware for the application.

    Middleware executes in reverse order of addition.
    """
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(ErrorHandlingMiddleware, debug=debug)
