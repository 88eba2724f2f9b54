from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any

import pytest

from keygate.common.exceptions import ErrorCode, LicenseAPIError
from keygate.common.models import LicenseStatus
from keygate.server.domain.state_machine import (
    ActivationAction,
    plan_activation,
    plan_deactivation,
)

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _license(**overrides: Any) -> Any:
    values = {
        "status": LicenseStatus.ACTIVE,
        "expires_at": None,
        "max_domain_changes": 1,
        "domain_changes_used": 0,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _activation(domain: str) -> Any:
    return SimpleNamespace(domain=domain, is_active=True)


def test_first_activation_creates() -> None:
    assert plan_activation(_license(), None, "a.com", NOW) is ActivationAction.CREATE


def test_first_activation_ignores_spent_quota() -> None:
    lic = _license(max_domain_changes=0)
    assert plan_activation(lic, None, "a.com", NOW) is ActivationAction.CREATE


def test_same_domain_is_reused() -> None:
    assert (
        plan_activation(_license(), _activation("a.com"), "a.com", NOW)
        is ActivationAction.REUSE
    )


def test_other_domain_is_a_change_while_quota_remains() -> None:
    assert (
        plan_activation(_license(), _activation("a.com"), "b.com", NOW)
        is ActivationAction.CHANGE_DOMAIN
    )


def test_domain_change_limit() -> None:
    lic = _license(max_domain_changes=2, domain_changes_used=2)
    with pytest.raises(LicenseAPIError) as exc_info:
        plan_activation(lic, _activation("a.com"), "b.com", NOW)
    assert exc_info.value.code is ErrorCode.DOMAIN_CHANGE_LIMIT_EXCEEDED
    assert exc_info.value.status_code == 403  # noqa: PLR2004
    assert exc_info.value.message == (
        "Maximum domain changes (2) reached. Please contact support."
    )


def test_reuse_is_allowed_with_spent_quota() -> None:
    lic = _license(max_domain_changes=0)
    assert plan_activation(lic, _activation("a.com"), "a.com", NOW) is ActivationAction.REUSE


@pytest.mark.parametrize(
    ("overrides", "code"),
    [
        ({"status": LicenseStatus.REVOKED}, ErrorCode.LICENSE_REVOKED),
        ({"status": LicenseStatus.EXPIRED}, ErrorCode.LICENSE_EXPIRED),
        ({"expires_at": NOW - timedelta(seconds=1)}, ErrorCode.LICENSE_EXPIRED),
        (
            {"status": LicenseStatus.REVOKED, "expires_at": NOW - timedelta(days=1)},
            ErrorCode.LICENSE_REVOKED,
        ),
    ],
)
def test_activation_refused(overrides: dict[str, Any], code: ErrorCode) -> None:
    with pytest.raises(LicenseAPIError) as exc_info:
        plan_activation(_license(**overrides), None, "a.com", NOW)
    assert exc_info.value.code is code


def test_deactivation_returns_active_row() -> None:
    active = _activation("a.com")
    assert plan_deactivation(_license(), active, "a.com") is active


def test_expired_license_can_be_deactivated() -> None:
    active = _activation("a.com")
    lic = _license(status=LicenseStatus.EXPIRED)
    assert plan_deactivation(lic, active, "a.com") is active


@pytest.mark.parametrize(
    ("overrides", "active", "code"),
    [
        ({"status": LicenseStatus.REVOKED}, _activation("a.com"), ErrorCode.LICENSE_REVOKED),
        ({}, None, ErrorCode.NOT_ACTIVATED),
        ({}, _activation("b.com"), ErrorCode.DOMAIN_MISMATCH),
    ],
)
def test_deactivation_refused(
    overrides: dict[str, Any], active: Any, code: ErrorCode
) -> None:
    with pytest.raises(LicenseAPIError) as exc_info:
        plan_deactivation(_license(**overrides), active, "a.com")
    assert exc_info.value.code is code


def test_deactivation_errors_are_client_errors() -> None:
    with pytest.raises(LicenseAPIError) as exc_info:
        plan_deactivation(_license(), None, "a.com")
    assert exc_info.value.status_code == 400  # noqa: PLR2004
    assert exc_info.value.message == "License is not currently activated on any domain"
