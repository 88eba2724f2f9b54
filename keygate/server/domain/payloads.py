"""
Builders for the response payload fragments shared by several endpoints.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import BaseModel

from keygate.common.clock import isoformat
from keygate.common.logging_utils import mask_email
from keygate.common.models import (
    ActivationRecord,
    CustomerInfo,
    LicenseSummary,
    ProductInfo,
)

if TYPE_CHECKING:
    from keygate.server.database import License, LicenseActivation


def product_info(lic: License) -> ProductInfo:
    return ProductInfo(name=lic.product.name, slug=lic.product.slug, type=lic.product.type)


def customer_info(lic: License) -> CustomerInfo:
    return CustomerInfo(name=lic.customer_name, email=mask_email(lic.customer_email))


def license_summary(lic: License) -> LicenseSummary:
    return LicenseSummary(
        license_key=lic.license_key,
        product_slug=lic.product.slug,
        status=lic.status,
        customer_name=lic.customer_name,
        customer_email=mask_email(lic.customer_email),
        validity_days=lic.validity_days,
        activated_at=isoformat(lic.activated_at),
        expires_at=isoformat(lic.expires_at),
        max_domain_changes=lic.max_domain_changes,
        domain_changes_used=lic.domain_changes_used,
        created_at=isoformat(lic.created_at),
    )


def activation_record(activation: LicenseActivation) -> ActivationRecord:
    return ActivationRecord(
        domain=activation.domain,
        ip_address=activation.ip_address,
        is_active=activation.is_active,
        activated_at=isoformat(activation.activated_at),
        deactivated_at=isoformat(activation.deactivated_at),
        deactivation_reason=activation.deactivation_reason,
    )


@dataclass
class HandlerResult:
    """Payload, message and HTTP status of a successful operation."""

    data: BaseModel
    message: str | None = None
    status_code: int = 200
