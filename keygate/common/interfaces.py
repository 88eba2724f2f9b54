"""
Interfaces and protocols for dependency injection.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from keygate.common.models import LicenseStatus, ProductType
    from keygate.server.database import License, LicenseActivation, Product
    from keygate.server.persistence import ActivationOutcome, DeactivationOutcome


class ISlidingWindowStore(Protocol):
    """Protocol for sliding-window counters used by the rate limiter."""

    def hit(
        self, key: str, limit: int, window: float, now: float
    ) -> tuple[bool, int, float]: ...

    def peek(
        self, key: str, limit: int, window: float, now: float
    ) -> tuple[bool, int, float]: ...


class ILicenseRepository(Protocol):
    """Protocol for license storage."""

    def find_by_key(self, license_key: str) -> License | None: ...

    def find_by_key_and_product_slug(
        self, license_key: str, product_slug: str
    ) -> License | None: ...

    def get_active_activation(self, license_id: str) -> LicenseActivation | None: ...

    def mark_expired(self, license_id: str, now: datetime) -> bool: ...

    def mark_revoked(self, license_id: str, now: datetime) -> bool: ...

    def activate_or_change_domain(
        self,
        license_id: str,
        domain: str,
        ip_address: str | None,
        now: datetime,
        max_attempts: int = ...,
    ) -> ActivationOutcome: ...

    def deactivate(
        self,
        license_id: str,
        domain: str,
        reason: str,
        now: datetime,
        max_attempts: int = ...,
    ) -> DeactivationOutcome: ...

    def add_product(
        self,
        name: str,
        slug: str,
        product_type: ProductType = ...,
        active: bool = ...,  # noqa: FBT001
    ) -> Product: ...

    def get_product_by_slug(self, slug: str) -> Product | None: ...

    def create_license(
        self,
        product_id: str,
        license_key: str,
        validity_days: int,
        max_domain_changes: int,
        customer_name: str | None = ...,
        customer_email: str | None = ...,
        notes: str | None = ...,
    ) -> License: ...

    def list_licenses(
        self, status: LicenseStatus | None, limit: int, offset: int
    ) -> tuple[list[License], int]: ...

    def list_activations(self, license_id: str) -> list[LicenseActivation]: ...
