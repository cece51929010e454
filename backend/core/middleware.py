"""Request tracking middleware and the exception-to-JSON mapping.

Each request gets an ``X-Request-ID`` (echoed when the caller sends one)
and an ``X-Process-Time`` header. The request id is bound into the
structlog context so engine and service log lines emitted while serving
the request carry it too.
"""

import time
from typing import Optional
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import get_settings
from core.exceptions import DecisioningException, WorkflowExecutionError

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
QUIET_PATHS = frozenset({"/api/health", "/api/health/", "/health"})


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 2)


def _error_body(request: Request, detail: str, **extra) -> dict:
    return {"detail": detail, "request_id": getattr(request.state, "request_id", None), **extra}


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
        started = time.monotonic()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception as exc:
                logger.error(
                    "Unhandled exception",
                    method=request.method,
                    path=request.url.path,
                    duration_ms=_elapsed_ms(started),
                    error=str(exc),
                    exc_info=True,
                )
                return self._internal_error(request_id, exc)

            duration_ms = _elapsed_ms(started)
            response.headers[REQUEST_ID_HEADER] = request_id
            response.headers["X-Process-Time"] = f"{duration_ms:.2f}ms"
            if request.url.path not in QUIET_PATHS:
                self._log_response(request, response.status_code, duration_ms)
        return response

    @staticmethod
    def _internal_error(request_id: str, exc: Exception) -> JSONResponse:
        detail: Optional[str] = None
        if not get_settings().is_production:
            detail = str(exc) or None
        return JSONResponse(
            status_code=500,
            content={"detail": detail or "Internal server error", "request_id": request_id},
            headers={REQUEST_ID_HEADER: request_id},
        )

    @staticmethod
    def _log_response(request: Request, status_code: int, duration_ms: float) -> None:
        log = logger.warning if status_code >= 400 else logger.info
        log(
            "request.completed",
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=duration_ms,
            client_ip=request.client.host if request.client else None,
        )


def setup_exception_handlers(app: FastAPI) -> None:
    """Map decisioning errors to ErrorResponse-shaped bodies."""

    @app.exception_handler(WorkflowExecutionError)
    async def on_workflow_error(request: Request, exc: WorkflowExecutionError):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.message, code=exc.code.value, node_id=exc.node_id),
        )

    @app.exception_handler(DecisioningException)
    async def on_decisioning_error(request: Request, exc: DecisioningException):
        return JSONResponse(status_code=exc.status_code, content=_error_body(request, exc.message))

    @app.exception_handler(ValueError)
    async def on_value_error(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content=_error_body(request, str(exc)))
