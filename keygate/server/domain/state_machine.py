"""
Domain activation state machine.

Pure decisions over a license and its current active activation. The
repository calls these inside the transaction that applies the result, so a
decision is always made against the rows it is about to change.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from keygate.common.exceptions import ErrorCode, LicenseAPIError
from keygate.common.models import LicenseStatus
from keygate.server.expiry import is_expired

if TYPE_CHECKING:
    from datetime import datetime

    from keygate.server.database import License, LicenseActivation

DOMAIN_CHANGE_REASON = "Domain change"
DEFAULT_DEACTIVATION_REASON = "User requested deactivation"


class ActivationAction(str, Enum):
    CREATE = "create"  # no active binding: bind the domain, quota untouched
    REUSE = "reuse"  # already bound to this domain: idempotent success
    CHANGE_DOMAIN = "change_domain"  # bound elsewhere: move, consumes one change


def plan_activation(
    license: License,
    active: LicenseActivation | None,
    domain: str,
    now: datetime,
) -> ActivationAction:
    """Decide what activating ``domain`` does to ``license``."""
    if license.status is LicenseStatus.REVOKED:
        raise LicenseAPIError(ErrorCode.LICENSE_REVOKED)
    if license.status is LicenseStatus.EXPIRED or is_expired(license.expires_at, now):
        raise LicenseAPIError(ErrorCode.LICENSE_EXPIRED)

    if active is None:
        return ActivationAction.CREATE
    if active.domain == domain:
        return ActivationAction.REUSE
    if license.domain_changes_used >= license.max_domain_changes:
        raise LicenseAPIError(
            ErrorCode.DOMAIN_CHANGE_LIMIT_EXCEEDED,
            f"Maximum domain changes ({license.max_domain_changes}) reached. "
            "Please contact support.",
        )
    return ActivationAction.CHANGE_DOMAIN


def plan_deactivation(
    license: License, active: LicenseActivation | None, domain: str
) -> LicenseActivation:
    """Return the activation to close, or raise why it cannot be closed.

    Expired licenses may still be deactivated to free their domain.
    """
    if license.status is LicenseStatus.REVOKED:
        raise LicenseAPIError(ErrorCode.LICENSE_REVOKED)
    if active is None:
        raise LicenseAPIError(ErrorCode.NOT_ACTIVATED)
    if active.domain != domain:
        raise LicenseAPIError(ErrorCode.DOMAIN_MISMATCH)
    return active
