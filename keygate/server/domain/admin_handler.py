"""
Admin request handler for license service.
"""

from __future__ import annotations

import hmac
import logging
from typing import TYPE_CHECKING

from keygate.common.clock import utcnow
from keygate.common.exceptions import ErrorCode, LicenseAPIError
from keygate.common.logging_utils import mask_license_key
from keygate.common.models import (
    ActivationListResponseData,
    CreateLicenseRequest,
    LicenseListQuery,
    LicenseListResponseData,
    normalize_license_key,
)
from keygate.server.domain.payloads import (
    HandlerResult,
    activation_record,
    license_summary,
)

if TYPE_CHECKING:
    from keygate.common.clock import Clock
    from keygate.common.interfaces import ILicenseRepository
    from keygate.server.database import License
    from keygate.server.license_generator import LicenseGenerator

CREATED = 201


class AdminHandler:
    """Handles admin requests: issue, revoke and inspect licenses."""

    def __init__(
        self,
        repository: ILicenseRepository,
        license_generator: LicenseGenerator,
        admin_password: str | None,
        clock: Clock = utcnow,
    ):
        self.repository = repository
        self.license_generator = license_generator
        self.admin_password = admin_password
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    def authorize(self, admin_key: str | None) -> None:
        if (
            not self.admin_password
            or admin_key is None
            or not hmac.compare_digest(admin_key.encode(), self.admin_password.encode())
        ):
            self.logger.warning("Rejected admin request with invalid credentials")
            raise LicenseAPIError(ErrorCode.UNAUTHORIZED)

    def create_license(
        self, req: CreateLicenseRequest, admin_key: str | None
    ) -> HandlerResult:
        """Handle license creation."""
        self.authorize(admin_key)
        lic = self.license_generator.generate_license(
            product_slug=req.product_slug,
            customer_name=req.customer_name,
            customer_email=req.customer_email,
            validity_days=req.validity_days,
            max_domain_changes=req.max_domain_changes,
            notes=req.notes,
        )
        return HandlerResult(
            license_summary(lic), "License created successfully", status_code=CREATED
        )

    def revoke(self, license_key: str, admin_key: str | None) -> HandlerResult:
        """Handle license revocation. Revoking twice is not an error."""
        self.authorize(admin_key)
        lic = self._find(license_key)
        if self.repository.mark_revoked(lic.id, self.clock()):
            self.logger.info("License %s revoked", mask_license_key(lic.license_key))
            message = "License revoked successfully"
        else:
            message = "License was already revoked"
        lic = self._find(lic.license_key)
        return HandlerResult(license_summary(lic), message)

    def list_licenses(
        self, query: LicenseListQuery, admin_key: str | None
    ) -> HandlerResult:
        self.authorize(admin_key)
        licenses, total = self.repository.list_licenses(
            query.status, query.limit, query.offset
        )
        data = LicenseListResponseData(
            licenses=[license_summary(lic) for lic in licenses],
            total=total,
            limit=query.limit,
            offset=query.offset,
        )
        return HandlerResult(data)

    def list_activations(self, license_key: str, admin_key: str | None) -> HandlerResult:
        self.authorize(admin_key)
        lic = self._find(license_key)
        data = ActivationListResponseData(
            license_key=lic.license_key,
            activations=[
                activation_record(a) for a in self.repository.list_activations(lic.id)
            ],
        )
        return HandlerResult(data)

    def _find(self, license_key: str) -> License:
        try:
            key = normalize_license_key(license_key)
        except ValueError as e:
            raise LicenseAPIError(
                ErrorCode.VALIDATION_ERROR, details={"license_key": [str(e)]}
            ) from e
        lic = self.repository.find_by_key(key)
        if lic is None:
            raise LicenseAPIError(ErrorCode.LICENSE_NOT_FOUND)
        return lic
