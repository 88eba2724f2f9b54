"""
License repository backed by SQLAlchemy.

Reads return detached ORM objects (sessions never expire on commit). Every
mutation of a license goes through the ``version`` column guard, and the
activation read-check-write runs inside a single transaction that retries
from a fresh read when a concurrent writer got there first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from keygate.common.exceptions import (
    ConcurrentUpdateError,
    DataIntegrityError,
    ErrorCode,
    LicenseAPIError,
)
from keygate.common.models import LicenseStatus, ProductType
from keygate.server.database import License, LicenseActivation, Product
from keygate.server.domain.state_machine import (
    DOMAIN_CHANGE_REASON,
    ActivationAction,
    plan_activation,
    plan_deactivation,
)
from keygate.server.expiry import compute_expires_at

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ActivationOutcome:
    license: License
    activation: LicenseActivation
    action: ActivationAction
    previous_domain: str | None = None

    @property
    def is_new_activation(self) -> bool:
        return self.action is not ActivationAction.REUSE


@dataclass
class DeactivationOutcome:
    license: License
    activation: LicenseActivation


class LicenseRepository:
    """Handles loading and saving licenses, products and activations."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self.session_factory = sessionmaker(engine, expire_on_commit=False)

    # --- Reads ---

    def find_by_key(self, license_key: str) -> License | None:
        with self.session_factory() as session:
            return session.scalars(
                select(License).where(License.license_key == license_key)
            ).first()

    def find_by_key_and_product_slug(
        self, license_key: str, product_slug: str
    ) -> License | None:
        with self.session_factory() as session:
            return session.scalars(
                select(License)
                .join(License.product)
                .where(License.license_key == license_key, Product.slug == product_slug)
            ).first()

    def get_active_activation(self, license_id: str) -> LicenseActivation | None:
        with self.session_factory() as session:
            return self._active_activation(session, license_id)

    def get_product_by_slug(self, slug: str) -> Product | None:
        with self.session_factory() as session:
            return session.scalars(select(Product).where(Product.slug == slug)).first()

    def list_licenses(
        self, status: LicenseStatus | None, limit: int, offset: int
    ) -> tuple[list[License], int]:
        with self.session_factory() as session:
            query = select(License)
            count_query = select(func.count()).select_from(License)
            if status is not None:
                query = query.where(License.status == status)
                count_query = count_query.where(License.status == status)
            total = session.scalar(count_query) or 0
            licenses = session.scalars(
                query.order_by(License.created_at.desc()).limit(limit).offset(offset)
            ).all()
            return list(licenses), total

    def list_activations(self, license_id: str) -> list[LicenseActivation]:
        with self.session_factory() as session:
            return list(
                session.scalars(
                    select(LicenseActivation)
                    .where(LicenseActivation.license_id == license_id)
                    .order_by(LicenseActivation.created_at)
                ).all()
            )

    # --- Status transitions ---

    def mark_expired(self, license_id: str, now: datetime) -> bool:
        """Move an active license to expired. Returns False when nothing changed."""
        with self.session_factory.begin() as session:
            result = session.execute(
                update(License)
                .where(License.id == license_id, License.status == LicenseStatus.ACTIVE)
                .values(
                    status=LicenseStatus.EXPIRED,
                    updated_at=now,
                    version=License.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    def mark_revoked(self, license_id: str, now: datetime) -> bool:
        """Revoke a license. Revocation is terminal, so repeating it is a no-op."""
        with self.session_factory.begin() as session:
            result = session.execute(
                update(License)
                .where(License.id == license_id, License.status != LicenseStatus.REVOKED)
                .values(
                    status=LicenseStatus.REVOKED,
                    updated_at=now,
                    version=License.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    # --- Activation state changes ---

    def activate_or_change_domain(
        self,
        license_id: str,
        domain: str,
        ip_address: str | None,
        now: datetime,
        max_attempts: int = 5,
    ) -> ActivationOutcome:
        """Bind ``domain`` to the license, moving an existing binding if allowed."""
        return self._run_guarded(
            license_id,
            max_attempts,
            lambda session: self._apply_activation(
                session, license_id, domain, ip_address, now
            ),
        )

    def deactivate(
        self,
        license_id: str,
        domain: str,
        reason: str,
        now: datetime,
        max_attempts: int = 5,
    ) -> DeactivationOutcome:
        """Close the active binding on ``domain``. Domain-change quota is untouched."""
        return self._run_guarded(
            license_id,
            max_attempts,
            lambda session: self._apply_deactivation(
                session, license_id, domain, reason, now
            ),
        )

    # --- Admin writes ---

    def add_product(
        self,
        name: str,
        slug: str,
        product_type: ProductType = ProductType.PLUGIN,
        active: bool = True,  # noqa: FBT001, FBT002
    ) -> Product:
        with self.session_factory.begin() as session:
            product = Product(name=name, slug=slug, type=product_type, active=active)
            session.add(product)
        return product

    def set_product_active(self, slug: str, active: bool) -> bool:  # noqa: FBT001
        with self.session_factory.begin() as session:
            result = session.execute(
                update(Product)
                .where(Product.slug == slug)
                .values(active=active)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    def create_license(
        self,
        product_id: str,
        license_key: str,
        validity_days: int,
        max_domain_changes: int,
        customer_name: str | None = None,
        customer_email: str | None = None,
        notes: str | None = None,
    ) -> License:
        with self.session_factory.begin() as session:
            license = License(
                product_id=product_id,
                license_key=license_key,
                validity_days=validity_days,
                max_domain_changes=max_domain_changes,
                customer_name=customer_name,
                customer_email=customer_email,
                notes=notes,
                status=LicenseStatus.ACTIVE,
                domain_changes_used=0,
            )
            session.add(license)
            session.flush()
            session.refresh(license, ["product"])
        return license

    # --- Internals ---

    def _run_guarded(
        self, license_id: str, max_attempts: int, apply: Callable[[Session], T]
    ) -> T:
        for attempt in range(1, max_attempts + 1):
            try:
                with self.session_factory.begin() as session:
                    return apply(session)
            except (StaleDataError, IntegrityError):
                logger.info(
                    "Concurrent update on license %s, retrying (%s/%s)",
                    license_id,
                    attempt,
                    max_attempts,
                )
        msg = f"Gave up on license {license_id} after {max_attempts} conflicting attempts"
        raise ConcurrentUpdateError(msg)

    @staticmethod
    def _lock_license(session: Session, license_id: str) -> License:
        license = session.scalars(
            select(License).where(License.id == license_id).with_for_update(of=License)
        ).first()
        if license is None:
            raise LicenseAPIError(ErrorCode.LICENSE_NOT_FOUND)
        return license

    @staticmethod
    def _active_activation(session: Session, license_id: str) -> LicenseActivation | None:
        rows = session.scalars(
            select(LicenseActivation).where(
                LicenseActivation.license_id == license_id,
                LicenseActivation.is_active.is_(True),
            )
        ).all()
        if len(rows) > 1:
            logger.error(
                "License %s has %s active activations", license_id, len(rows)
            )
            msg = f"License {license_id} has more than one active activation"
            raise DataIntegrityError(msg)
        return rows[0] if rows else None

    def _apply_activation(
        self,
        session: Session,
        license_id: str,
        domain: str,
        ip_address: str | None,
        now: datetime,
    ) -> ActivationOutcome:
        license = self._lock_license(session, license_id)
        active = self._active_activation(session, license_id)
        action = plan_activation(license, active, domain, now)

        if action is ActivationAction.REUSE:
            assert active is not None
            return ActivationOutcome(license, active, action)

        previous_domain = None
        if action is ActivationAction.CHANGE_DOMAIN:
            assert active is not None
            previous_domain = active.domain
            active.is_active = False
            active.deactivated_at = now
            active.deactivation_reason = DOMAIN_CHANGE_REASON
            license.domain_changes_used += 1

        # The validity window is stamped once, on the very first activation
        if license.activated_at is None:
            license.activated_at = now
            license.expires_at = compute_expires_at(now, license.validity_days)
        license.updated_at = now
        # Old binding must be closed before the new active row exists
        session.flush()

        activation = LicenseActivation(
            license_id=license.id,
            domain=domain,
            ip_address=ip_address,
            is_active=True,
            activated_at=now,
        )
        session.add(activation)
        session.flush()
        return ActivationOutcome(license, activation, action, previous_domain)

    def _apply_deactivation(
        self,
        session: Session,
        license_id: str,
        domain: str,
        reason: str,
        now: datetime,
    ) -> DeactivationOutcome:
        license = self._lock_license(session, license_id)
        active = self._active_activation(session, license_id)
        target = plan_deactivation(license, active, domain)

        target.is_active = False
        target.deactivated_at = now
        target.deactivation_reason = reason
        # Bumps the version so a racing activation re-reads
        license.updated_at = now
        session.flush()
        return DeactivationOutcome(license, target)
