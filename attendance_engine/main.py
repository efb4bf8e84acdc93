import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from attendance_engine.db import engine
from attendance_engine.errors import ApiError, error_response, get_request_id
from attendance_engine.logging_utils import setup_json_logging
from attendance_engine.routers import attendance
from attendance_engine.services.schema_guard import SchemaGuardResult, verify_runtime_schema
from attendance_engine.settings import (
    get_batch_chunk_retries,
    get_batch_chunk_size,
    get_cors_origins,
    get_settings,
)

settings = get_settings()
setup_json_logging(settings.log_level)
request_logger = logging.getLogger("attendance_engine.request")
startup_logger = logging.getLogger("attendance_engine.startup")

REQUEST_ID_HEADER = "X-Request-Id"

# Starlette raises plain HTTPException for auth and routing failures.
HTTP_STATUS_CODES = {
    401: "INVALID_TOKEN",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
    expose_headers=[REQUEST_ID_HEADER, "Content-Disposition"],
)


@app.middleware("http")
async def attach_request_context(request: Request, call_next):
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    request.state.request_id = request_id

    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        request_logger.info(
            "request_complete",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "company_id": request.query_params.get("company_id"),
                "status_code": status_code,
                "latency_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code == 409:
        request_logger.info(
            "attendance_conflict",
            extra={"request_id": get_request_id(request), "code": exc.code, "path": request.url.path},
        )
    return error_response(request, status_code=exc.status_code, code=exc.code, message=exc.message)


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=HTTP_STATUS_CODES.get(exc.status_code, "HTTP_ERROR"),
        message=str(exc.detail or "Request failed."),
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = [
        f"{'.'.join(str(part) for part in item.get('loc', ()))}: {item.get('msg', 'invalid')}"
        for item in exc.errors()
    ]
    return error_response(request, status_code=422, code="VALIDATION_ERROR", message="; ".join(problems))


@app.exception_handler(IntegrityError)
async def handle_integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:
    # Two writers created the same (employee, day) or (company, month) row.
    request_logger.warning(
        "attendance_write_conflict",
        extra={"request_id": get_request_id(request), "path": request.url.path, "error": str(exc.orig)},
    )
    return error_response(
        request,
        status_code=409,
        code="CONFLICT",
        message="Concurrent attendance update, retry the request.",
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    request_logger.exception(
        "unhandled_error",
        extra={
            "request_id": get_request_id(request),
            "method": request.method,
            "path": request.url.path,
        },
    )
    return error_response(request, status_code=500, code="INTERNAL_ERROR", message="Unexpected server error.")


app.include_router(attendance.router)


def _check_schema() -> SchemaGuardResult:
    result = verify_runtime_schema(engine)
    log = startup_logger.info if result.ok else startup_logger.error
    log("schema_guard_ok" if result.ok else "schema_guard_failed", extra=result.to_dict())
    return result


@app.on_event("startup")
async def run_schema_guard() -> None:
    if not settings.schema_guard_enabled:
        startup_logger.info("schema_guard_skipped")
        return
    result = await asyncio.to_thread(_check_schema)
    app.state.schema_guard_result = result
    if not result.ok and settings.schema_guard_strict:
        raise RuntimeError("Attendance schema is not up to date: " + "; ".join(result.issues))


@app.get("/health")
def health() -> dict[str, Any]:
    guard: SchemaGuardResult | None = getattr(app.state, "schema_guard_result", None)
    if guard is None:
        guard = SchemaGuardResult(
            ok=False,
            checked_at_utc=datetime.now(timezone.utc),
            issues=["SCHEMA_GUARD_NOT_RUN"],
        )
    return {
        "status": "ok",
        "app_name": settings.app_name,
        "attendance_timezone": settings.attendance_timezone,
        "batch": {
            "chunk_size": get_batch_chunk_size(),
            "chunk_retries": get_batch_chunk_retries(),
        },
        "schema_guard": guard.to_dict(),
    }
