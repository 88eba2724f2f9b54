"""
Routes for the license server.

License endpoints read the raw body themselves so that rate limiting runs
before any validation, and so that malformed input still gets the standard
error envelope instead of FastAPI's default 422.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from keygate.common.exceptions import ErrorCode, LicenseAPIError, RateLimitError
from keygate.common.logging_utils import mask_license_key
from keygate.common.models import (
    ActivateRequest,
    CreateLicenseRequest,
    DeactivateRequest,
    LicenseListQuery,
    StatusRequest,
    ValidateRequest,
)
from keygate.server.rate_limiter import (
    RateLimitClass,
    get_client_identifier,
    rate_limit_message,
)
from keygate.server.responses import (
    error_response,
    exception_response,
    response_headers,
    success_response,
)

if TYPE_CHECKING:
    from keygate.common.config import Config
    from keygate.server.domain.payloads import HandlerResult
    from keygate.server.rate_limiter import RateLimiterService, RateLimitResult

    from .services import LicenseService

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

VALUE_ERROR_PREFIX = "Value error, "


def validation_details(error: PydanticValidationError) -> dict[str, list[str]]:
    """Group pydantic errors per field: ``{"domain": ["Invalid domain format"]}``."""
    details: dict[str, list[str]] = {}
    for err in error.errors():
        field = ".".join(str(part) for part in err["loc"]) or "body"
        message = err["msg"].removeprefix(VALUE_ERROR_PREFIX)
        details.setdefault(field, []).append(message)
    return details


def parse_model(model: type[M], data: Any) -> M:
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise LicenseAPIError(
            ErrorCode.VALIDATION_ERROR, details=validation_details(e)
        ) from e


async def read_json_object(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as e:
        raise LicenseAPIError(
            ErrorCode.VALIDATION_ERROR, "Invalid JSON in request body"
        ) from e
    if not isinstance(body, dict):
        raise LicenseAPIError(
            ErrorCode.VALIDATION_ERROR, "Request body must be a JSON object"
        )
    return body


class LicenseRoutes:
    """Handles FastAPI routes for the license server."""

    def __init__(
        self,
        service: LicenseService,
        rate_limiter: RateLimiterService,
        config: Config,
    ):
        self.service = service
        self.rate_limiter = rate_limiter
        self.config = config
        self.admin_password = config.ADMIN_PASSWORD

    def setup_routes(self, app: FastAPI) -> None:
        """Setup API routes on the FastAPI app."""
        prefix = self.config.API_PREFIX

        app.get("/health")(self.health)
        app.post(f"{prefix}/licenses/activate")(self.activate)
        app.post(f"{prefix}/licences/activate", include_in_schema=False)(self.activate)
        app.post(f"{prefix}/licenses/validate")(self.validate)
        app.post(f"{prefix}/licenses/deactivate")(self.deactivate)
        app.post(f"{prefix}/licenses/status")(self.status)
        if self.admin_password:
            app.post(f"{prefix}/admin/licenses")(self.create_license)
            app.get(f"{prefix}/admin/licenses")(self.list_licenses)
            app.post(f"{prefix}/admin/licenses/{{license_key}}/revoke")(self.revoke)
            app.get(f"{prefix}/admin/licenses/{{license_key}}/activations")(
                self.list_activations
            )

    async def health(self) -> dict[str, Any]:
        """Handle /health endpoint."""
        return self.service.health()

    async def activate(self, request: Request) -> JSONResponse:
        """Handle /licenses/activate endpoint."""
        return await self._license_endpoint(
            request,
            RateLimitClass.ACTIVATION,
            ActivateRequest,
            lambda req, client_ip: self.service.activate(req, client_ip),
        )

    async def validate(self, request: Request) -> JSONResponse:
        """Handle /licenses/validate endpoint."""
        return await self._license_endpoint(
            request,
            RateLimitClass.GENERAL,
            ValidateRequest,
            lambda req, _: self.service.validate(req),
        )

    async def deactivate(self, request: Request) -> JSONResponse:
        """Handle /licenses/deactivate endpoint."""
        return await self._license_endpoint(
            request,
            RateLimitClass.GENERAL,
            DeactivateRequest,
            lambda req, _: self.service.deactivate(req),
        )

    async def status(self, request: Request) -> JSONResponse:
        """Handle /licenses/status endpoint."""
        return await self._license_endpoint(
            request,
            RateLimitClass.GENERAL,
            StatusRequest,
            lambda req, _: self.service.status(req),
        )

    async def create_license(self, request: Request) -> JSONResponse:
        """Handle license issuing by an admin."""

        async def call() -> HandlerResult:
            self.service.admin_handler.authorize(self._admin_key(request))
            body = await read_json_object(request)
            req = parse_model(CreateLicenseRequest, body)
            return await self.service.create_license(req, self._admin_key(request))

        return await self._guarded(request, call)

    async def revoke(self, request: Request, license_key: str) -> JSONResponse:
        """Handle license revocation by an admin."""
        return await self._guarded(
            request,
            lambda: self.service.revoke(license_key, self._admin_key(request)),
        )

    async def list_licenses(self, request: Request) -> JSONResponse:
        """Handle license listing by an admin."""

        async def call() -> HandlerResult:
            self.service.admin_handler.authorize(self._admin_key(request))
            query = parse_model(LicenseListQuery, dict(request.query_params))
            return await self.service.list_licenses(query, self._admin_key(request))

        return await self._guarded(request, call, RateLimitClass.LIST)

    async def list_activations(self, request: Request, license_key: str) -> JSONResponse:
        """Handle activation history listing by an admin."""
        return await self._guarded(
            request,
            lambda: self.service.list_activations(license_key, self._admin_key(request)),
            RateLimitClass.LIST,
        )

    # --- Helpers ---

    @staticmethod
    def _admin_key(request: Request) -> str | None:
        return request.headers.get("x-admin-key")

    def _client_ip(self, request: Request) -> str:
        return get_client_identifier(
            request, trust_proxy_headers=self.config.TRUST_PROXY_HEADERS
        )

    async def _license_endpoint(
        self,
        request: Request,
        rate_class: RateLimitClass,
        model: type[M],
        call: Callable[[M, str | None], Awaitable[HandlerResult]],
    ) -> JSONResponse:
        """Rate limit, failed-attempt block, validation, then the handler."""

        async def run(client_ip: str) -> HandlerResult:
            body = await read_json_object(request)
            raw_key = body.get("license_key")
            if isinstance(raw_key, str):
                self._check_failed_attempts(raw_key.strip().upper())
            req = parse_model(model, body)
            logger.debug(
                "%s %s license=%s",
                request.method,
                request.url.path,
                mask_license_key(getattr(req, "license_key", None)),
            )
            return await call(req, None if client_ip == "unknown" else client_ip)

        return await self._guarded(request, run, rate_class, pass_client_ip=True)

    def _check_failed_attempts(self, license_key: str) -> None:
        blocked = self.rate_limiter.is_blocked(license_key)
        if blocked is not None:
            logger.warning(
                "License %s blocked after repeated failed attempts",
                mask_license_key(license_key),
            )
            raise RateLimitError(rate_limit_message(blocked), blocked)

    async def _guarded(
        self,
        request: Request,
        call: Callable[..., Awaitable[HandlerResult]],
        rate_class: RateLimitClass | None = None,
        *,
        pass_client_ip: bool = False,
    ) -> JSONResponse:
        """Turn a handler call into an envelope, whatever happens inside it."""
        rate_limit: RateLimitResult | None = None
        try:
            client_ip = self._client_ip(request)
            if rate_class is not None:
                rate_limit = self.rate_limiter.enforce(client_ip, rate_class)
            result = await (call(client_ip) if pass_client_ip else call())
        except LicenseAPIError as e:
            return exception_response(e, self.config, rate_limit)
        except Exception:
            logger.exception("Unexpected error on %s %s", request.method, request.url.path)
            return error_response(
                ErrorCode.INTERNAL_ERROR,
                headers=response_headers(self.config, rate_limit),
            )
        return success_response(
            result.data,
            result.message,
            status_code=result.status_code,
            headers=response_headers(self.config, rate_limit),
        )
