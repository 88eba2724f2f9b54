"""
Pydantic models for request/response validation.
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, Field, field_validator

LICENSE_KEY_RE = re.compile(r"^[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}$")
PRODUCT_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
# localhost, IPv4 or a hostname, each with an optional port
DOMAIN_RE = re.compile(
    r"^(?:localhost|(?:\d{1,3}\.){3}\d{1,3}|"
    r"(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)*[a-z0-9](?:[a-z0-9-]*[a-z0-9])?)"
    r"(?::\d{1,5})?$"
)
SCHEME_RE = re.compile(r"^https?://")


class LicenseStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class ProductType(str, Enum):
    PLUGIN = "plugin"
    THEME = "theme"
    SOURCE_CODE = "source_code"
    OTHER = "other"


def normalize_license_key(value: str) -> str:
    key = value.strip().upper()
    if not key:
        raise ValueError("License key is required")
    if not LICENSE_KEY_RE.match(key):
        raise ValueError("Invalid license key format. Expected: XXXX-XXXX-XXXX-XXXX")
    return key


def normalize_product_slug(value: str) -> str:
    slug = value.strip().lower()
    if not slug:
        raise ValueError("Product slug is required")
    if not PRODUCT_SLUG_RE.match(slug):
        raise ValueError("Invalid product slug format")
    return slug


def normalize_domain(value: str) -> str:
    """Lower-case a domain and strip scheme, trailing slash and path; keep the port."""
    domain = value.strip().lower()
    if not domain:
        raise ValueError("Domain is required")
    domain = SCHEME_RE.sub("", domain)
    domain = domain.removesuffix("/")
    domain = domain.split("/")[0]
    if not DOMAIN_RE.match(domain):
        raise ValueError("Invalid domain format")
    return domain


# --- Requests ---


class LicenseKeyRequest(BaseModel):
    license_key: str
    product_slug: str

    @field_validator("license_key")
    @classmethod
    def _license_key(cls, value: str) -> str:
        return normalize_license_key(value)

    @field_validator("product_slug")
    @classmethod
    def _product_slug(cls, value: str) -> str:
        return normalize_product_slug(value)


class StatusRequest(LicenseKeyRequest):
    pass


class ActivateRequest(LicenseKeyRequest):
    domain: str

    @field_validator("domain")
    @classmethod
    def _domain(cls, value: str) -> str:
        return normalize_domain(value)


class ValidateRequest(ActivateRequest):
    pass


class DeactivateRequest(ActivateRequest):
    reason: str | None = Field(default=None, max_length=500)


class CreateLicenseRequest(BaseModel):
    product_slug: str
    customer_name: str | None = Field(default=None, max_length=255)
    customer_email: str | None = Field(default=None, max_length=255)
    validity_days: int | None = Field(default=None, gt=0)
    max_domain_changes: int | None = Field(default=None, ge=0)
    notes: str | None = None

    @field_validator("product_slug")
    @classmethod
    def _product_slug(cls, value: str) -> str:
        return normalize_product_slug(value)


# --- Response payloads ---


class ProductInfo(BaseModel):
    name: str
    slug: str
    type: ProductType


class CustomerInfo(BaseModel):
    name: str | None = None
    email: str | None = None


class ActivateResponseData(BaseModel):
    license_key: str
    domain: str
    activated_at: str | None
    expires_at: str | None
    days_remaining: int | None
    is_new_activation: bool
    domain_changes_remaining: int
    product: ProductInfo
    customer: CustomerInfo


class ValidateResponseData(BaseModel):
    valid: bool
    license_key: str
    domain: str
    status: LicenseStatus
    activated_at: str | None
    expires_at: str | None
    days_remaining: int | None
    product: ProductInfo


class DeactivateResponseData(BaseModel):
    license_key: str
    domain: str
    deactivated_at: str
    reason: str | None
    domain_changes_remaining: int


class ActivationInfo(BaseModel):
    is_activated: bool
    domain: str | None
    activated_at: str | None


class ValidityInfo(BaseModel):
    validity_days: int
    expires_at: str | None
    days_remaining: int | None
    is_expired: bool


class DomainChangesInfo(BaseModel):
    max_allowed: int
    used: int
    remaining: int


class TimestampsInfo(BaseModel):
    created_at: str | None
    updated_at: str | None


class StatusResponseData(BaseModel):
    license_key: str
    status: LicenseStatus
    customer: CustomerInfo
    product: ProductInfo
    activation: ActivationInfo
    validity: ValidityInfo
    domain_changes: DomainChangesInfo
    timestamps: TimestampsInfo


class LicenseSummary(BaseModel):
    license_key: str
    product_slug: str
    status: LicenseStatus
    customer_name: str | None
    customer_email: str | None
    validity_days: int
    activated_at: str | None
    expires_at: str | None
    max_domain_changes: int
    domain_changes_used: int
    created_at: str | None


class ActivationRecord(BaseModel):
    domain: str
    ip_address: str | None
    is_active: bool
    activated_at: str | None
    deactivated_at: str | None
    deactivation_reason: str | None


class LicenseListResponseData(BaseModel):
    licenses: list[LicenseSummary]
    total: int
    limit: int
    offset: int


class LicenseListQuery(BaseModel):
    status: LicenseStatus | None = None
    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class ActivationListResponseData(BaseModel):
    license_key: str
    activations: list[ActivationRecord]
