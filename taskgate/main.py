from __future__ import annotations

from uuid import uuid4

import sentry_sdk
import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from starlette.middleware.base import BaseHTTPMiddleware

from taskgate.api import audit_router, auth_router, org_router, tasks_router, users_router
from taskgate.core.errors import (
    AccessDeniedError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    TaskGateError,
    UnknownRoleError,
    ValidationError,
)
from taskgate.core.logging import configure_logging, get_logger
from taskgate.core.rate_limit import rate_limiter_dependency
from taskgate.core.settings import settings

configure_logging()
logger = get_logger("taskgate.http")

if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=str(settings.sentry_dsn),
        environment=settings.environment,
        integrations=[FastApiIntegration()],
        traces_sample_rate=0.1,
    )

MESSAGES = {
    "error_forbidden": "Forbidden",
    "error_unauthorized": "Unauthorized",
    "error_not_found": "Not found",
    "error_conflict": "Conflict",
    "error_invalid_request": "Invalid request",
    "error_rate_limited": "Too many requests",
}

app = FastAPI(title=settings.app_name, debug=settings.debug)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get("x-request-id") or uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()
        response.headers.setdefault("X-Request-ID", request_id)
        return response


app.add_middleware(RequestContextMiddleware)

app.include_router(auth_router.router)
app.include_router(tasks_router.router)
app.include_router(org_router.router)
app.include_router(users_router.router)
app.include_router(audit_router.router)


@app.get("/healthz", tags=["system"])
async def health(_: None = Depends(rate_limiter_dependency("healthz", limit=30, window_seconds=60))) -> dict:
    return {"status": "ok"}


def _error_body(code: str, message: str | None = None) -> dict:
    return {"detail": message or MESSAGES.get(code, code), "code": code}


@app.exception_handler(AccessDeniedError)
async def access_denied_handler(request: Request, exc: AccessDeniedError):
    # The reason stays in the logs and the audit trail only.
    logger.info("http.forbidden", reason=exc.reason.value, path=request.url.path)
    return JSONResponse(status_code=403, content=_error_body("error_forbidden"))


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    logger.info("http.unauthorized", reason=exc.message, path=request.url.path)
    return JSONResponse(
        status_code=401,
        content=_error_body(exc.code),
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(UnknownRoleError)
async def unknown_role_handler(request: Request, exc: UnknownRoleError):
    logger.error("http.unknown_role", error=exc.message, path=request.url.path)
    return JSONResponse(status_code=401, content=_error_body("error_unauthorized"))


_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (ConflictError, 409),
    (ValidationError, 400),
)


@app.exception_handler(TaskGateError)
async def taskgate_error_handler(request: Request, exc: TaskGateError):
    status_code = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    log = logger.error if status_code >= 500 else logger.info
    log("http.error", status=status_code, code=exc.code, reason=exc.message, path=request.url.path)
    message = exc.message if status_code < 500 else None
    return JSONResponse(status_code=status_code, content=_error_body(exc.code, message))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    detail = exc.detail
    code = None
    if isinstance(detail, dict):
        code = detail.get("code")
        message = detail.get("message") or (MESSAGES.get(code, code) if code else None)
    elif isinstance(detail, str):
        code = detail if detail in MESSAGES else None
        message = MESSAGES.get(detail, detail)
    else:
        message = str(detail)
    body = {"detail": message}
    if code:
        body["code"] = code
    logger.error(
        "http_exception",
        status=exc.status_code,
        code=code,
        detail=body.get("detail"),
        path=str(request.url),
    )
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)
