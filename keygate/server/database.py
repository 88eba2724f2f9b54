"""
SQLAlchemy tables and engine setup for licenses and their activations.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from pathlib import Path

from sqlalchemy import (
    Boolean,
    DateTime,
    Engine,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    event,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.pool import StaticPool

from keygate.common.clock import utcnow
from keygate.common.config import Config
from keygate.common.models import LicenseStatus, ProductType

IN_MEMORY_SQLITE_URLS = ("sqlite://", "sqlite:///:memory:")


def generate_id() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls: type) -> list[str]:
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    pass


class Product(Base):
    __tablename__ = "product"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[ProductType] = mapped_column(
        Enum(ProductType, name="product_type", values_callable=_enum_values),
        nullable=False,
        default=ProductType.PLUGIN,
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    licenses: Mapped[list[License]] = relationship(back_populates="product")


class License(Base):
    __tablename__ = "license"
    __table_args__ = (
        Index("license_key_status_idx", "license_key", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True
    )
    license_key: Mapped[str] = mapped_column(
        String(19), unique=True, nullable=False, index=True
    )
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[LicenseStatus] = mapped_column(
        Enum(LicenseStatus, name="license_status", values_callable=_enum_values),
        nullable=False,
        default=LicenseStatus.ACTIVE,
    )
    validity_days: Mapped[int] = mapped_column(Integer, nullable=False, default=365)
    activated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    max_domain_changes: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    domain_changes_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
    # Optimistic lock: every ORM UPDATE of a license is guarded by this column
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    product: Mapped[Product] = relationship(
        back_populates="licenses", lazy="joined", innerjoin=True
    )
    activations: Mapped[list[LicenseActivation]] = relationship(
        back_populates="license", order_by="LicenseActivation.created_at"
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def domain_changes_remaining(self) -> int:
        return self.max_domain_changes - self.domain_changes_used


class LicenseActivation(Base):
    __tablename__ = "license_activation"
    __table_args__ = (
        Index("activation_license_active_idx", "license_id", "is_active"),
        # At most one active activation per license
        Index(
            "uq_activation_one_active_per_license",
            "license_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    license_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("license.id", ondelete="CASCADE"), nullable=False
    )
    domain: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    activated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    deactivated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    deactivation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    license: Mapped[License] = relationship(back_populates="activations")


def create_db_engine(database_url: str | None = None, config: Config | None = None) -> Engine:
    """Create an engine with bounded connect/lock timeouts."""
    config = config or Config()
    url = database_url or config.DATABASE_URL

    # SQLAlchemy expects postgresql:// not postgres://
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)

    if url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,
            "timeout": config.DB_CONNECT_TIMEOUT,
        }
        if url in IN_MEMORY_SQLITE_URLS:
            # One shared connection, otherwise every thread sees its own empty database
            engine = create_engine(url, connect_args=connect_args, poolclass=StaticPool)
        else:
            db_path = Path(url.removeprefix("sqlite:///"))
            db_path.parent.mkdir(parents=True, exist_ok=True)
            engine = create_engine(url, connect_args=connect_args)

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record) -> None:  # noqa: ANN001
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        url,
        pool_pre_ping=True,  # test connection before using it
        pool_recycle=config.DB_POOL_RECYCLE,
        connect_args={"connect_timeout": config.DB_CONNECT_TIMEOUT},
    )


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)
