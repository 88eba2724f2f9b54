"""Business logic services for the license server.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from starlette.concurrency import run_in_threadpool

from keygate.common.clock import isoformat, utcnow
from keygate.server.domain.activate_handler import ActivateHandler
from keygate.server.domain.admin_handler import AdminHandler
from keygate.server.domain.deactivate_handler import DeactivateHandler
from keygate.server.domain.status_handler import StatusHandler
from keygate.server.domain.validate_handler import ValidateHandler
from keygate.server.expiry import ExpiryEvaluator
from keygate.server.license_generator import LicenseGenerator
from keygate.server.license_validator import LicenseValidator

if TYPE_CHECKING:
    from keygate.common.clock import Clock
    from keygate.common.config import Config
    from keygate.common.interfaces import ILicenseRepository
    from keygate.common.models import (
        ActivateRequest,
        CreateLicenseRequest,
        DeactivateRequest,
        LicenseListQuery,
        StatusRequest,
        ValidateRequest,
    )
    from keygate.server.domain.payloads import HandlerResult
    from keygate.server.rate_limiter import RateLimiterService


class LicenseService:
    """Handles business logic for the license server.

    Handlers are synchronous (SQLAlchemy sessions); the async entry points run
    them in the threadpool so the event loop never blocks on storage.
    """

    def __init__(
        self,
        config: Config,
        repository: ILicenseRepository,
        rate_limiter: RateLimiterService,
        clock: Clock = utcnow,
    ):
        self.config = config
        self.repository = repository
        self.rate_limiter = rate_limiter
        self.clock = clock

        self.license_validator = LicenseValidator(repository, rate_limiter)
        self.expiry_evaluator = ExpiryEvaluator(repository)
        self.license_generator = LicenseGenerator(repository, config)

        # Initialize handlers
        self.activate_handler = ActivateHandler(
            repository=repository,
            license_validator=self.license_validator,
            expiry_evaluator=self.expiry_evaluator,
            max_attempts=config.ACTIVATION_MAX_ATTEMPTS,
            clock=clock,
        )
        self.deactivate_handler = DeactivateHandler(
            repository=repository,
            license_validator=self.license_validator,
            expiry_evaluator=self.expiry_evaluator,
            max_attempts=config.ACTIVATION_MAX_ATTEMPTS,
            clock=clock,
        )
        self.validate_handler = ValidateHandler(
            repository=repository,
            license_validator=self.license_validator,
            expiry_evaluator=self.expiry_evaluator,
            clock=clock,
        )
        self.status_handler = StatusHandler(
            repository=repository,
            license_validator=self.license_validator,
            expiry_evaluator=self.expiry_evaluator,
            clock=clock,
        )
        self.admin_handler = AdminHandler(
            repository=repository,
            license_generator=self.license_generator,
            admin_password=config.ADMIN_PASSWORD,
            clock=clock,
        )

    def health(self) -> dict[str, Any]:
        """Health check endpoint."""
        return {"status": "ok", "timestamp": isoformat(self.clock())}

    async def activate(
        self, req: ActivateRequest, ip_address: str | None
    ) -> HandlerResult:
        """Handle /licenses/activate business logic."""
        return await run_in_threadpool(
            self.activate_handler.handle_activate, req, ip_address
        )

    async def validate(self, req: ValidateRequest) -> HandlerResult:
        """Handle /licenses/validate business logic."""
        return await run_in_threadpool(self.validate_handler.handle_validate, req)

    async def deactivate(self, req: DeactivateRequest) -> HandlerResult:
        """Handle /licenses/deactivate business logic."""
        return await run_in_threadpool(self.deactivate_handler.handle_deactivate, req)

    async def status(self, req: StatusRequest) -> HandlerResult:
        """Handle /licenses/status business logic."""
        return await run_in_threadpool(self.status_handler.handle_status, req)

    async def create_license(
        self, req: CreateLicenseRequest, admin_key: str | None
    ) -> HandlerResult:
        return await run_in_threadpool(
            self.admin_handler.create_license, req, admin_key
        )

    async def revoke(self, license_key: str, admin_key: str | None) -> HandlerResult:
        return await run_in_threadpool(self.admin_handler.revoke, license_key, admin_key)

    async def list_licenses(
        self, query: LicenseListQuery, admin_key: str | None
    ) -> HandlerResult:
        return await run_in_threadpool(
            self.admin_handler.list_licenses, query, admin_key
        )

    async def list_activations(
        self, license_key: str, admin_key: str | None
    ) -> HandlerResult:
        return await run_in_threadpool(
            self.admin_handler.list_activations, license_key, admin_key
        )
