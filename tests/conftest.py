from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update

from keygate.common.config import Config
from keygate.common.models import ProductType
from keygate.server.core import LicenseServer
from keygate.server.database import License, Product, create_db_engine, init_db
from keygate.server.persistence import LicenseRepository
from keygate.server.rate_limiter import InMemorySlidingWindowStore, RateLimiterService

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy import Engine

ADMIN_PASSWORD = "test-admin-password"
LICENSE_KEY = "ABCD-EFGH-JKLM-NPQR"
PRODUCT_SLUG = "test-plugin"
START = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock whose time only moves when a test says so."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Config:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("KEYGATE_DATABASE_URL", f"sqlite:///{tmp_path / 'keygate.db'}")
    monkeypatch.setenv("KEYGATE_ADMIN_PASSWORD", ADMIN_PASSWORD)
    return Config()


@pytest.fixture
def engine(config: Config) -> Engine:
    engine = create_db_engine(config=config)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repository(engine: Engine) -> LicenseRepository:
    return LicenseRepository(engine)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(START)


@pytest.fixture
def product(repository: LicenseRepository) -> Product:
    return repository.add_product("Test Plugin", PRODUCT_SLUG, ProductType.PLUGIN)


@pytest.fixture
def make_license(
    repository: LicenseRepository, product: Product
) -> Callable[..., License]:
    """Factory for licenses of ``product``; defaults to 30 days and one domain change."""

    def _make(license_key: str = LICENSE_KEY, **overrides: Any) -> License:
        params: dict[str, Any] = {
            "validity_days": 30,
            "max_domain_changes": 1,
            "customer_name": "John Doe",
            "customer_email": "john.doe@example.com",
        }
        params.update(overrides)
        return repository.create_license(
            product_id=product.id, license_key=license_key, **params
        )

    return _make


@pytest.fixture
def update_license(repository: LicenseRepository) -> Callable[..., None]:
    """Write license columns directly, bypassing the state machine."""

    def _update(license_id: str, **values: Any) -> None:
        with repository.session_factory.begin() as session:
            session.execute(
                update(License)
                .where(License.id == license_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )

    return _update


@pytest.fixture
def rate_limiter(config: Config) -> RateLimiterService:
    return RateLimiterService(InMemorySlidingWindowStore(), config.RATE_LIMITS)


@pytest.fixture
def server(
    config: Config,
    engine: Engine,
    repository: LicenseRepository,
    rate_limiter: RateLimiterService,
    clock: FrozenClock,
) -> LicenseServer:
    return LicenseServer(
        config=config,
        engine=engine,
        repository=repository,
        rate_limiter=rate_limiter,
        clock=clock,
    )


@pytest.fixture
def client(server: LicenseServer) -> TestClient:
    return TestClient(server.app)


def license_body(domain: str | None = "example.com", **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"license_key": LICENSE_KEY, "product_slug": PRODUCT_SLUG}
    if domain is not None:
        body["domain"] = domain
    body.update(extra)
    return body
