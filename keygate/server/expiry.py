"""
Lazy license expiry evaluation.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from keygate.common.clock import as_utc
from keygate.common.logging_utils import mask_license_key
from keygate.common.models import LicenseStatus

if TYPE_CHECKING:
    from keygate.common.interfaces import ILicenseRepository
    from keygate.server.database import License

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


def is_expired(expires_at: datetime | None, now: datetime) -> bool:
    """A license without an expiry date never expires; the boundary instant is still valid."""
    expires_at = as_utc(expires_at)
    if expires_at is None:
        return False
    return now > expires_at


def days_remaining(expires_at: datetime | None, now: datetime) -> int | None:
    expires_at = as_utc(expires_at)
    if expires_at is None:
        return None
    return max(0, math.ceil((expires_at - now) / ONE_DAY))


def compute_expires_at(activated_at: datetime, validity_days: int) -> datetime:
    return activated_at + timedelta(days=validity_days)


class ExpiryEvaluator:
    """Keeps the stored status in step with the wall clock."""

    def __init__(self, repository: ILicenseRepository):
        self.repository = repository

    def evaluate_and_persist(self, license: License, now: datetime) -> LicenseStatus:
        """Persist ``active -> expired`` on first observation, otherwise do nothing.

        Revoked is terminal and is never overwritten.
        """
        if license.status is not LicenseStatus.ACTIVE:
            return license.status
        if not is_expired(license.expires_at, now):
            return license.status

        if self.repository.mark_expired(license.id, now):
            logger.info(
                "License %s transitioned to expired", mask_license_key(license.license_key)
            )
            license.status = LicenseStatus.EXPIRED
            return license.status

        # Someone else moved it first (expired or revoked); trust storage
        current = self.repository.find_by_key(license.license_key)
        license.status = current.status if current else LicenseStatus.EXPIRED
        return license.status
