"""
Status request handler for license service.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from keygate.common.clock import isoformat, utcnow
from keygate.common.models import (
    ActivationInfo,
    DomainChangesInfo,
    StatusRequest,
    StatusResponseData,
    TimestampsInfo,
    ValidityInfo,
)
from keygate.server.domain.payloads import HandlerResult, customer_info, product_info
from keygate.server.expiry import days_remaining, is_expired

if TYPE_CHECKING:
    from keygate.common.clock import Clock
    from keygate.common.interfaces import ILicenseRepository
    from keygate.server.expiry import ExpiryEvaluator
    from keygate.server.license_validator import LicenseValidator


class StatusHandler:
    """Full license information for a settings panel; needs no domain."""

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

    def handle_status(self, req: StatusRequest) -> HandlerResult:
        """Handle status request."""
        now = self.clock()
        lic = self.license_validator.resolve(req.license_key, req.product_slug)
        status = self.expiry_evaluator.evaluate_and_persist(lic, now)
        active = self.repository.get_active_activation(lic.id)

        data = StatusResponseData(
            license_key=lic.license_key,
            status=status,
            customer=customer_info(lic),
            product=product_info(lic),
            activation=ActivationInfo(
                is_activated=active is not None,
                domain=active.domain if active else None,
                activated_at=isoformat(lic.activated_at),
            ),
            validity=ValidityInfo(
                validity_days=lic.validity_days,
                expires_at=isoformat(lic.expires_at),
                days_remaining=days_remaining(lic.expires_at, now),
                is_expired=is_expired(lic.expires_at, now),
            ),
            domain_changes=DomainChangesInfo(
                max_allowed=lic.max_domain_changes,
                used=lic.domain_changes_used,
                remaining=lic.domain_changes_remaining,
            ),
            timestamps=TimestampsInfo(
                created_at=isoformat(lic.created_at),
                updated_at=isoformat(lic.updated_at),
            ),
        )
        return HandlerResult(data, "License status retrieved successfully")
