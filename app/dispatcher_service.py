from __future__ import annotations

import logging
import os
import uuid
from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.dependencies import get_dispatcher
from app.routers.admin import router as admin_router
from app.routers.health import router as health_router
from config.settings import settings
from ops.structured_logger import setup_logging
from reminders.dispatcher import ReminderDispatcher
from security.operator_auth import OperatorClaims

setup_logging(settings.LOG_LEVEL)

log = logging.getLogger("medrem.service")

app = FastAPI(title="Medication Reminder Dispatcher", version="1.0.0")


def _get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("x-request-id") or ""


def _error_response(request: Request, status_code: int, content: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={**content, "request_id": _get_request_id(request), "revision": os.getenv("K_REVISION") or ""},
    )


def _request_fields(request: Request) -> Dict[str, Any]:
    return {"path": request.url.path, "method": request.method, "request_id": _get_request_id(request)}


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    response = await call_next(request)
    response.headers["X-Request-Id"] = rid
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    log.warning(
        "http_exception",
        extra={"extra": {"event": "http_exception", "status_code": exc.status_code, "detail": exc.detail, **_request_fields(request)}},
    )
    return _error_response(request, exc.status_code, {"detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    log.warning("validation_error", extra={"extra": {"event": "validation_error", **_request_fields(request)}})
    return _error_response(request, 422, {"detail": exc.errors()})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log.error(
        "internal_unhandled_exception",
        extra={
            "extra": {
                "event": "internal_unhandled_exception",
                "error_type": type(exc).__name__,
                "message": str(exc),
                **_request_fields(request),
            }
        },
        exc_info=True,
    )
    return _error_response(request, 500, {"error": "internal_unhandled_exception"})


@app.post("/send_medication_reminders")
async def send_medication_reminders(
    request: Request,
    claims: dict = OperatorClaims,
    dispatcher: ReminderDispatcher = Depends(get_dispatcher),
):
    # Always 2xx: Cloud Scheduler retries non-2xx responses, which would resend.
    summary = await dispatcher.run()
    return {"ok": summary.ok, "request_id": _get_request_id(request), "summary": summary.to_dict()}


app.include_router(health_router, tags=["health"])
app.include_router(admin_router, prefix="/admin", tags=["admin"])
