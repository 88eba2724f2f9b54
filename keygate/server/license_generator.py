"""
License key generation and issuing.
"""

from __future__ import annotations

import logging
import secrets
import string
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from keygate.common.config import Config
from keygate.common.exceptions import ErrorCode, LicenseAPIError
from keygate.common.logging_utils import mask_license_key

if TYPE_CHECKING:
    from keygate.common.interfaces import ILicenseRepository
    from keygate.server.database import License

KEY_ALPHABET = string.ascii_uppercase + string.digits
KEY_GROUPS = 4
KEY_GROUP_LEN = 4


def generate_license_key() -> str:
    """Random ``XXXX-XXXX-XXXX-XXXX`` key drawn from ``A-Z0-9``."""
    return "-".join(
        "".join(secrets.choice(KEY_ALPHABET) for _ in range(KEY_GROUP_LEN))
        for _ in range(KEY_GROUPS)
    )


class LicenseGenerator:
    """Issues new licenses for existing products."""

    def __init__(
        self,
        repository: ILicenseRepository,
        config: Config | None = None,
    ):
        self.repository = repository
        self.config = config or Config()
        self.logger = logging.getLogger(__name__)

    def generate_license(  # noqa: PLR0913
        self,
        product_slug: str,
        customer_name: str | None = None,
        customer_email: str | None = None,
        validity_days: int | None = None,
        max_domain_changes: int | None = None,
        notes: str | None = None,
    ) -> License:
        """Create an active, not yet activated license with a fresh unique key."""
        product = self.repository.get_product_by_slug(product_slug)
        if product is None:
            raise LicenseAPIError(
                ErrorCode.PRODUCT_NOT_FOUND, f"Product not found: {product_slug}"
            )

        if validity_days is None:
            validity_days = self.config.DEFAULT_VALIDITY_DAYS
        if max_domain_changes is None:
            max_domain_changes = self.config.DEFAULT_MAX_DOMAIN_CHANGES

        for _ in range(self.config.LICENSE_KEY_GENERATION_ATTEMPTS):
            license_key = generate_license_key()
            if self.repository.find_by_key(license_key) is not None:
                continue
            try:
                lic = self.repository.create_license(
                    product_id=product.id,
                    license_key=license_key,
                    validity_days=validity_days,
                    max_domain_changes=max_domain_changes,
                    customer_name=customer_name,
                    customer_email=customer_email,
                    notes=notes,
                )
            except IntegrityError:
                # Lost a race for the same key
                continue
            self.logger.info(
                "Issued license %s for product %s",
                mask_license_key(lic.license_key),
                product_slug,
            )
            return lic

        msg = "Failed to generate a unique license key"
        raise RuntimeError(msg)
