"""
Deactivate request handler for license service.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from keygate.common.clock import isoformat, utcnow
from keygate.common.exceptions import ErrorCode, LicenseAPIError
from keygate.common.logging_utils import mask_license_key
from keygate.common.models import DeactivateRequest, DeactivateResponseData, LicenseStatus
from keygate.server.domain.payloads import HandlerResult
from keygate.server.domain.state_machine import DEFAULT_DEACTIVATION_REASON

if TYPE_CHECKING:
    from keygate.common.clock import Clock
    from keygate.common.interfaces import ILicenseRepository
    from keygate.server.expiry import ExpiryEvaluator
    from keygate.server.license_validator import LicenseValidator


class DeactivateHandler:
    """Releases the domain a license is bound to.

    Expired licenses may be deactivated; revoked ones may not. Deactivating
    never gives back a domain change.
    """

    def __init__(
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

    def handle_deactivate(self, req: DeactivateRequest) -> HandlerResult:
        """Handle deactivate request."""
        now = self.clock()
        lic = self.license_validator.resolve(req.license_key, req.product_slug)
        self.license_validator.ensure_product_active(lic)
        if lic.status is LicenseStatus.REVOKED:
            raise LicenseAPIError(ErrorCode.LICENSE_REVOKED)
        # Expiry is recorded but does not block releasing the domain
        if self.expiry_evaluator.evaluate_and_persist(lic, now) is LicenseStatus.REVOKED:
            raise LicenseAPIError(ErrorCode.LICENSE_REVOKED)

        reason = req.reason or DEFAULT_DEACTIVATION_REASON
        outcome = self.repository.deactivate(
            lic.id, req.domain, reason, now, self.max_attempts
        )
        self.logger.info(
            "License %s deactivated on %s", mask_license_key(lic.license_key), req.domain
        )

        data = DeactivateResponseData(
            license_key=outcome.license.license_key,
            domain=outcome.activation.domain,
            deactivated_at=isoformat(outcome.activation.deactivated_at),
            reason=outcome.activation.deactivation_reason,
            domain_changes_remaining=outcome.license.domain_changes_remaining,
        )
        return HandlerResult(data, "License deactivated successfully")
