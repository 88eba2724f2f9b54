"""
Error taxonomy and exceptions for the license API.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from keygate.server.rate_limiter import RateLimitResult


class ErrorTier(str, Enum):
    """How a caller is expected to react to an error."""

    VALIDATION = "validation"  # malformed input, fix the request
    POLICY = "policy"  # permanent denial, do not retry
    STATE = "state"  # caller-correctable state mismatch
    TRANSIENT = "transient"  # retry later


class ErrorCode(str, Enum):
    """Closed set of error codes shared by every endpoint.

    Each member carries its HTTP status, tier and default message.
    """

    VALIDATION_ERROR = ("VALIDATION_ERROR", 400, ErrorTier.VALIDATION, "Invalid request parameters")
    LICENSE_NOT_FOUND = ("LICENSE_NOT_FOUND", 404, ErrorTier.STATE, "License key not found")
    PRODUCT_NOT_FOUND = (
        "PRODUCT_NOT_FOUND",
        404,
        ErrorTier.STATE,
        "License does not belong to the specified product",
    )
    PRODUCT_INACTIVE = ("PRODUCT_INACTIVE", 403, ErrorTier.POLICY, "Product is not active")
    LICENSE_REVOKED = ("LICENSE_REVOKED", 403, ErrorTier.POLICY, "License has been revoked")
    LICENSE_EXPIRED = ("LICENSE_EXPIRED", 403, ErrorTier.STATE, "License has expired")
    DOMAIN_CHANGE_LIMIT_EXCEEDED = (
        "DOMAIN_CHANGE_LIMIT_EXCEEDED",
        403,
        ErrorTier.POLICY,
        "Maximum domain changes reached. Please contact support.",
    )
    NOT_ACTIVATED = (
        "NOT_ACTIVATED",
        400,
        ErrorTier.STATE,
        "License is not currently activated on any domain",
    )
    DOMAIN_MISMATCH = (
        "DOMAIN_MISMATCH",
        400,
        ErrorTier.STATE,
        "License is not activated on this domain",
    )
    UNAUTHORIZED = ("UNAUTHORIZED", 401, ErrorTier.POLICY, "Invalid admin credentials")
    RATE_LIMIT_EXCEEDED = (
        "RATE_LIMIT_EXCEEDED",
        429,
        ErrorTier.TRANSIENT,
        "Too many requests",
    )
    INTERNAL_ERROR = (
        "INTERNAL_ERROR",
        500,
        ErrorTier.TRANSIENT,
        "An unexpected error occurred. Please try again later.",
    )

    def __new__(
        cls, value: str, status_code: int, tier: ErrorTier, default_message: str
    ) -> ErrorCode:
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.status_code = status_code  # type: ignore[attr-defined]
        obj.tier = tier  # type: ignore[attr-defined]
        obj.default_message = default_message  # type: ignore[attr-defined]
        return obj


class LicenseAPIError(Exception):
    """Business or input error that maps onto the error envelope."""

    def __init__(
        self,
        code: ErrorCode,
        message: str | None = None,
        details: dict[str, list[str]] | None = None,
        status_code: int | None = None,
    ) -> None:
        self.code = code
        self.message = message or code.default_message  # type: ignore[attr-defined]
        self.details = details
        self.status_code: int = status_code or code.status_code  # type: ignore[attr-defined]
        super().__init__(self.message)


class RateLimitError(LicenseAPIError):
    """Exception for rate limiting."""

    def __init__(self, message: str, result: RateLimitResult) -> None:
        super().__init__(ErrorCode.RATE_LIMIT_EXCEEDED, message)
        self.result = result


class RateLimitBackendError(Exception):
    """The rate-limit store could not answer; callers fail open."""


class DataIntegrityError(Exception):
    """Storage returned data that violates a model invariant."""


class ConcurrentUpdateError(Exception):
    """A guarded write kept losing to concurrent writers."""


class LicenseClientError(Exception):
    """The license API answered a client call with an error envelope."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int | None = None,
        details: dict[str, list[str]] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details


class LicenseNotActiveError(Exception):
    """Raised by the license decorators when the license is not usable."""
