# KeyGate license activation service

from keygate.client.client import LicenseClient
from keygate.common.decorators import (
    license_protected,
    license_retry_on_fail,
    requires_active_license,
)

__all__ = [
    "LicenseClient",
    "license_protected",
    "license_retry_on_fail",
    "requires_active_license",
]
