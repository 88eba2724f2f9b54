"""
Response envelope shared by every endpoint.

``{"success": true, "data": ..., "message": ...}`` on success and
``{"success": false, "error": {"code", "message", "details"}}`` on failure.
License state must never be cached by an intermediary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from keygate.common.exceptions import ErrorCode, LicenseAPIError, RateLimitError

if TYPE_CHECKING:
    from keygate.common.config import Config
    from keygate.server.rate_limiter import RateLimitResult

CACHE_CONTROL = "no-store, no-cache, must-revalidate"


def response_headers(
    config: Config, rate_limit: RateLimitResult | None = None
) -> dict[str, str]:
    headers = {
        "Cache-Control": CACHE_CONTROL,
        "X-API-Version": config.API_VERSION,
        "X-API-Type": config.API_TYPE,
    }
    if rate_limit is not None:
        headers.update(rate_limit.headers())
        if not rate_limit.success:
            headers["Retry-After"] = str(rate_limit.retry_after())
    return headers


def success_response(
    data: BaseModel | dict[str, Any],
    message: str | None = None,
    *,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {
        "success": True,
        "data": data.model_dump(mode="json") if isinstance(data, BaseModel) else data,
    }
    if message:
        body["message"] = message
    return JSONResponse(body, status_code=status_code, headers=headers)


def error_response(
    code: ErrorCode,
    message: str | None = None,
    *,
    details: dict[str, list[str]] | None = None,
    status_code: int | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    error: dict[str, Any] = {
        "code": code.value,
        "message": message or code.default_message,  # type: ignore[attr-defined]
    }
    if details:
        error["details"] = details
    return JSONResponse(
        {"success": False, "error": error},
        status_code=status_code or code.status_code,  # type: ignore[attr-defined]
        headers=headers,
    )


def exception_response(
    exc: LicenseAPIError,
    config: Config,
    rate_limit: RateLimitResult | None = None,
) -> JSONResponse:
    """Envelope for a raised ``LicenseAPIError``.

    A ``RateLimitError`` carries its own limiter result, which wins.
    """
    if isinstance(exc, RateLimitError):
        rate_limit = exc.result
    return error_response(
        exc.code,
        exc.message,
        details=exc.details,
        status_code=exc.status_code,
        headers=response_headers(config, rate_limit),
    )
