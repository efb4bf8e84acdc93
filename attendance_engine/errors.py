from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class PeriodLockedError(ApiError):
    """Mutation attempted on a period that is frozen or was never generated."""

    def __init__(self, message: str = "Attendance period is locked."):
        super().__init__(status_code=409, code="PERIOD_LOCKED", message=message)


class ImmutableSourceError(ApiError):
    """Status change attempted on a leave or holiday-calendar row."""

    def __init__(self, message: str = "Attendance day status is owned by an external source."):
        super().__init__(status_code=409, code="IMMUTABLE_SOURCE", message=message)


class NotFoundError(ApiError):
    def __init__(self, message: str = "Not found."):
        super().__init__(status_code=404, code="NOT_FOUND", message=message)


class ValidationFailedError(ApiError):
    def __init__(self, message: str):
        super().__init__(status_code=422, code="VALIDATION_ERROR", message=message)


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    return JSONResponse(status_code=status_code, content=payload)
