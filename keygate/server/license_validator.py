"""
License lookup and prerequisite checks shared by every license endpoint.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from keygate.common.exceptions import ErrorCode, LicenseAPIError
from keygate.common.logging_utils import mask_license_key

if TYPE_CHECKING:
    from keygate.common.interfaces import ILicenseRepository
    from keygate.server.database import License
    from keygate.server.rate_limiter import RateLimiterService


class LicenseValidator:
    """Resolves a license for a product and checks the product can be used."""

    def __init__(
        self, repository: ILicenseRepository, rate_limiter: RateLimiterService
    ):
        self.repository = repository
        self.rate_limiter = rate_limiter
        self.logger = logging.getLogger(__name__)

    def resolve(self, license_key: str, product_slug: str) -> License:
        """Find the license of ``product_slug`` or raise one of the not-found errors.

        Every miss counts as a failed attempt against the key.
        """
        lic = self.repository.find_by_key_and_product_slug(license_key, product_slug)
        if lic is not None:
            return lic

        self.rate_limiter.record_failed_attempt(license_key)
        if self.repository.find_by_key(license_key) is not None:
            self.logger.info(
                "License %s does not belong to product %s",
                mask_license_key(license_key),
                product_slug,
            )
            raise LicenseAPIError(ErrorCode.PRODUCT_NOT_FOUND)

        self.logger.info("License %s not found", mask_license_key(license_key))
        raise LicenseAPIError(ErrorCode.LICENSE_NOT_FOUND)

    def ensure_product_active(self, lic: License) -> None:
        if not lic.product.active:
            self.logger.info("Product %s is inactive", lic.product.slug)
            raise LicenseAPIError(ErrorCode.PRODUCT_INACTIVE)
