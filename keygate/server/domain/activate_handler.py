"""
Activate request handler for license service.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from keygate.common.clock import isoformat, utcnow
from keygate.common.exceptions import ErrorCode, LicenseAPIError
from keygate.common.logging_utils import mask_license_key
from keygate.common.models import ActivateRequest, ActivateResponseData, LicenseStatus
from keygate.server.domain.payloads import HandlerResult, customer_info, product_info
from keygate.server.domain.state_machine import ActivationAction
from keygate.server.expiry import days_remaining

if TYPE_CHECKING:
    from keygate.common.clock import Clock
    from keygate.common.interfaces import ILicenseRepository
    from keygate.server.expiry import ExpiryEvaluator
    from keygate.server.license_validator import LicenseValidator


class ActivateHandler:
    """Binds a license to a domain, moving it when the quota allows."""

    def __init__(  # noqa: PLR0913
        self,
        repository: ILicenseRepository,
        license_validator: LicenseValidator,
        expiry_evaluator: ExpiryEvaluator,
        max_attempts: int = 5,
        clock: Clock = utcnow,
    ):
        self.repository = repository
        self.license_validator = license_validator
        self.expiry_evaluator = expiry_evaluator
        self.max_attempts = max_attempts
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    def handle_activate(
        self, req: ActivateRequest, ip_address: str | None = None
    ) -> HandlerResult:
        """Handle activate request."""
        now = self.clock()
        lic = self.license_validator.resolve(req.license_key, req.product_slug)
        self.license_validator.ensure_product_active(lic)

        if lic.status is LicenseStatus.REVOKED:
            raise LicenseAPIError(ErrorCode.LICENSE_REVOKED)
        status = self.expiry_evaluator.evaluate_and_persist(lic, now)
        if status is LicenseStatus.REVOKED:
            raise LicenseAPIError(ErrorCode.LICENSE_REVOKED)
        if status is LicenseStatus.EXPIRED:
            raise LicenseAPIError(ErrorCode.LICENSE_EXPIRED)

        outcome = self.repository.activate_or_change_domain(
            lic.id, req.domain, ip_address, now, self.max_attempts
        )
        activated = outcome.license

        if outcome.action is ActivationAction.REUSE:
            message = "License already activated on this domain"
        elif outcome.action is ActivationAction.CHANGE_DOMAIN:
            message = f"License moved from {outcome.previous_domain} to {req.domain}"
            self.logger.info(
                "License %s moved from %s to %s (%s/%s changes used)",
                mask_license_key(activated.license_key),
                outcome.previous_domain,
                req.domain,
                activated.domain_changes_used,
                activated.max_domain_changes,
            )
        else:
            message = "License activated successfully"
            self.logger.info(
                "License %s activated on %s",
                mask_license_key(activated.license_key),
                req.domain,
            )

        data = ActivateResponseData(
            license_key=activated.license_key,
            domain=req.domain,
            activated_at=isoformat(activated.activated_at),
            expires_at=isoformat(activated.expires_at),
            days_remaining=days_remaining(activated.expires_at, now),
            is_new_activation=outcome.is_new_activation,
            domain_changes_remaining=activated.domain_changes_remaining,
            product=product_info(lic),
            customer=customer_info(activated),
        )
        return HandlerResult(data, message)
