from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        errors: list[dict[str, str]] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.errors = errors or []


def internal_error(message: str = "Unexpected server error.") -> ApiError:
    return ApiError(status_code=500, code="INTERNAL_ERROR", message=message)


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    errors: list[dict[str, str]] | None = None,
) -> JSONResponse:
    payload = {
        "code": status_code,
        "status": code,
        "message": message,
        "errors": errors or [],
    }
    return JSONResponse(
        status_code=status_code,
        content=payload,
        headers={"X-Request-Id": get_request_id(request)},
    )


def success_payload(
    data: Any = None,
    *,
    message: str = "Success",
    code: int = 200,
    pagination: dict[str, Any] | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "code": code,
        "status": "OK",
        "message": message,
        "data": data,
    }
    if pagination is not None:
        payload["pagination"] = pagination
    return payload
