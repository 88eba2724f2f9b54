"""
Validate request handler for license service.

Validation is a routine poll: a revoked or expired license is a normal
answer (``valid: false``) here, not an error.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from keygate.common.clock import isoformat, utcnow
from keygate.common.exceptions import ErrorCode, LicenseAPIError
from keygate.common.logging_utils import mask_license_key
from keygate.common.models import LicenseStatus, ValidateRequest, ValidateResponseData
from keygate.server.domain.payloads import HandlerResult, product_info
from keygate.server.expiry import days_remaining

if TYPE_CHECKING:
    from keygate.common.clock import Clock
    from keygate.common.interfaces import ILicenseRepository
    from keygate.server.database import License
    from keygate.server.expiry import ExpiryEvaluator
    from keygate.server.license_validator import LicenseValidator

FORBIDDEN = 403


class ValidateHandler:
    """Answers whether a license may be used on a domain right now."""

    def __init__(
        self,
        repository: ILicenseRepository,
        license_validator: LicenseValidator,
        expiry_evaluator: ExpiryEvaluator,
        clock: Clock = utcnow,
    ):
        self.repository = repository
        self.license_validator = license_validator
        self.expiry_evaluator = expiry_evaluator
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    def handle_validate(self, req: ValidateRequest) -> HandlerResult:
        """Handle validate request."""
        now = self.clock()
        lic = self.license_validator.resolve(req.license_key, req.product_slug)
        self.license_validator.ensure_product_active(lic)

        status = self.expiry_evaluator.evaluate_and_persist(lic, now)
        if status is LicenseStatus.REVOKED:
            data = self._payload(lic, req.domain, LicenseStatus.REVOKED, None, valid=False)
            return HandlerResult(data, "License has been revoked")
        if status is LicenseStatus.EXPIRED:
            data = self._payload(lic, req.domain, LicenseStatus.EXPIRED, 0, valid=False)
            return HandlerResult(data, "License has expired")

        active = self.repository.get_active_activation(lic.id)
        if active is None:
            raise LicenseAPIError(
                ErrorCode.NOT_ACTIVATED,
                "License has not been activated on any domain",
                status_code=FORBIDDEN,
            )
        if active.domain != req.domain:
            self.logger.info(
                "License %s validated from %s but bound to %s",
                mask_license_key(lic.license_key),
                req.domain,
                active.domain,
            )
            raise LicenseAPIError(
                ErrorCode.DOMAIN_MISMATCH,
                f"License is activated on a different domain: {active.domain}",
                status_code=FORBIDDEN,
            )

        data = self._payload(
            lic,
            req.domain,
            LicenseStatus.ACTIVE,
            days_remaining(lic.expires_at, now),
            valid=True,
        )
        return HandlerResult(data, "License is valid")

    @staticmethod
    def _payload(
        lic: License,
        domain: str,
        status: LicenseStatus,
        remaining: int | None,
        *,
        valid: bool,
    ) -> ValidateResponseData:
        return ValidateResponseData(
            valid=valid,
            license_key=lic.license_key,
            domain=domain,
            status=status,
            activated_at=isoformat(lic.activated_at),
            expires_at=isoformat(lic.expires_at),
            days_remaining=remaining,
            product=product_info(lic),
        )
