from __future__ import annotations

from typing import TYPE_CHECKING, Callable

import pytest
from fastapi.testclient import TestClient

from conftest import LICENSE_KEY, PRODUCT_SLUG, license_body
from keygate.common.models import LicenseStatus
from keygate.server.core import LicenseServer
from keygate.server.rate_limiter import InMemorySlidingWindowStore, RateLimiterService

if TYPE_CHECKING:
    from conftest import FrozenClock
    from keygate.common.config import Config
    from keygate.server.database import License
    from keygate.server.persistence import LicenseRepository

ACTIVATE = "/api/v2/licenses/activate"


def test_first_activation(client: TestClient, make_license: Callable[..., License]) -> None:
    make_license()

    response = client.post(ACTIVATE, json=license_body("https://Example.com/"))

    assert response.status_code == 200  # noqa: PLR2004
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "License activated successfully"
    data = body["data"]
    assert data["license_key"] == LICENSE_KEY
    assert data["domain"] == "example.com"
    assert data["activated_at"] == "2026-01-15T12:00:00.000Z"
    assert data["expires_at"] == "2026-02-14T12:00:00.000Z"
    assert data["days_remaining"] == 30  # noqa: PLR2004
    assert data["is_new_activation"] is True
    assert data["domain_changes_remaining"] == 1
    assert data["product"] == {"name": "Test Plugin", "slug": PRODUCT_SLUG, "type": "plugin"}
    assert data["customer"] == {"name": "John Doe", "email": "j*******@e******.com"}


def test_reactivation_is_idempotent(
    client: TestClient, make_license: Callable[..., License], clock: FrozenClock
) -> None:
    make_license()
    client.post(ACTIVATE, json=license_body())
    clock.advance(days=10)

    response = client.post(ACTIVATE, json=license_body())

    assert response.status_code == 200  # noqa: PLR2004
    body = response.json()
    assert body["message"] == "License already activated on this domain"
    assert body["data"]["is_new_activation"] is False
    assert body["data"]["activated_at"] == "2026-01-15T12:00:00.000Z"
    assert body["data"]["days_remaining"] == 20  # noqa: PLR2004
    assert body["data"]["domain_changes_remaining"] == 1


def test_domain_change_until_quota_exhausted(
    client: TestClient,
    make_license: Callable[..., License],
    repository: LicenseRepository,
) -> None:
    make_license(max_domain_changes=1)
    client.post(ACTIVATE, json=license_body("site-a.com"))

    moved = client.post(ACTIVATE, json=license_body("site-b.com"))
    assert moved.status_code == 200  # noqa: PLR2004
    assert moved.json()["message"] == "License moved from site-a.com to site-b.com"
    assert moved.json()["data"]["is_new_activation"] is True
    assert moved.json()["data"]["domain_changes_remaining"] == 0

    refused = client.post(ACTIVATE, json=license_body("site-c.com"))
    assert refused.status_code == 403  # noqa: PLR2004
    assert refused.json() == {
        "success": False,
        "error": {
            "code": "DOMAIN_CHANGE_LIMIT_EXCEEDED",
            "message": "Maximum domain changes (1) reached. Please contact support.",
        },
    }
    lic = repository.find_by_key(LICENSE_KEY)
    assert lic is not None
    assert repository.get_active_activation(lic.id).domain == "site-b.com"  # type: ignore[union-attr]

    # Going back to the bound domain is still fine
    again = client.post(ACTIVATE, json=license_body("site-b.com"))
    assert again.status_code == 200  # noqa: PLR2004


def test_british_spelling_alias(client: TestClient, make_license: Callable[..., License]) -> None:
    make_license()
    response = client.post("/api/v2/licences/activate", json=license_body())
    assert response.status_code == 200  # noqa: PLR2004
    assert response.json()["data"]["is_new_activation"] is True


def test_unknown_license(client: TestClient, product: object) -> None:
    response = client.post(ACTIVATE, json=license_body())
    assert response.status_code == 404  # noqa: PLR2004
    assert response.json()["error"]["code"] == "LICENSE_NOT_FOUND"


def test_license_of_other_product(
    client: TestClient,
    make_license: Callable[..., License],
    repository: LicenseRepository,
) -> None:
    make_license()
    repository.add_product("Other", "other-plugin")
    response = client.post(ACTIVATE, json=license_body(product_slug="other-plugin"))
    assert response.status_code == 404  # noqa: PLR2004
    assert response.json()["error"] == {
        "code": "PRODUCT_NOT_FOUND",
        "message": "License does not belong to the specified product",
    }


def test_inactive_product(
    client: TestClient,
    make_license: Callable[..., License],
    repository: LicenseRepository,
) -> None:
    make_license()
    repository.set_product_active(PRODUCT_SLUG, False)
    response = client.post(ACTIVATE, json=license_body())
    assert response.status_code == 403  # noqa: PLR2004
    assert response.json()["error"]["code"] == "PRODUCT_INACTIVE"


def test_revoked_license(
    client: TestClient,
    make_license: Callable[..., License],
    repository: LicenseRepository,
    clock: FrozenClock,
) -> None:
    lic = make_license()
    repository.mark_revoked(lic.id, clock())
    response = client.post(ACTIVATE, json=license_body())
    assert response.status_code == 403  # noqa: PLR2004
    assert response.json()["error"] == {
        "code": "LICENSE_REVOKED",
        "message": "License has been revoked",
    }


def test_expired_license_is_persisted_as_expired(
    client: TestClient,
    make_license: Callable[..., License],
    repository: LicenseRepository,
    clock: FrozenClock,
) -> None:
    make_license(validity_days=30)
    client.post(ACTIVATE, json=license_body())
    clock.advance(days=31)

    response = client.post(ACTIVATE, json=license_body())

    assert response.status_code == 403  # noqa: PLR2004
    assert response.json()["error"]["code"] == "LICENSE_EXPIRED"
    stored = repository.find_by_key(LICENSE_KEY)
    assert stored is not None
    assert stored.status is LicenseStatus.EXPIRED


def test_expiry_boundary_is_still_valid(
    client: TestClient, make_license: Callable[..., License], clock: FrozenClock
) -> None:
    make_license(validity_days=30)
    client.post(ACTIVATE, json=license_body())
    clock.advance(days=30)

    response = client.post(ACTIVATE, json=license_body())

    assert response.status_code == 200  # noqa: PLR2004
    assert response.json()["data"]["days_remaining"] == 0


@pytest.mark.parametrize(
    ("body", "field", "message"),
    [
        (license_body(license_key="bad-key"), "license_key", "Invalid license key format"),
        (license_body(product_slug="Bad_Slug"), "product_slug", "Invalid product slug format"),
        (license_body("not a domain"), "domain", "Invalid domain format"),
        (license_body(None), "domain", "Field required"),
    ],
)
def test_validation_errors(
    client: TestClient, body: dict[str, object], field: str, message: str
) -> None:
    response = client.post(ACTIVATE, json=body)
    assert response.status_code == 400  # noqa: PLR2004
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["message"] == "Invalid request parameters"
    assert any(m.startswith(message) for m in error["details"][field])


@pytest.fixture
def strict_client(
    config: Config,
    engine: object,
    repository: LicenseRepository,
    clock: FrozenClock,
) -> TestClient:
    limits = dict(config.RATE_LIMITS, failed=(2, 3600))
    limiter = RateLimiterService(InMemorySlidingWindowStore(), limits)
    server = LicenseServer(
        config=config, engine=engine, repository=repository, rate_limiter=limiter, clock=clock  # type: ignore[arg-type]
    )
    return TestClient(server.app)


def test_repeated_misses_block_the_key(strict_client: TestClient, product: object) -> None:
    for _ in range(2):
        response = strict_client.post(ACTIVATE, json=license_body())
        assert response.status_code == 404  # noqa: PLR2004

    blocked = strict_client.post(ACTIVATE, json=license_body())

    assert blocked.status_code == 429  # noqa: PLR2004
    assert blocked.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
    assert int(blocked.headers["Retry-After"]) >= 1
    assert blocked.headers["X-RateLimit-Remaining"] == "0"

    # The block applies to the key before the body is validated
    lowercase = strict_client.post(
        ACTIVATE, json=license_body(license_key=LICENSE_KEY.lower(), domain="bad domain")
    )
    assert lowercase.status_code == 429  # noqa: PLR2004

    other_key = strict_client.post(
        ACTIVATE, json=license_body(license_key="WXYZ-EFGH-JKLM-NPQR")
    )
    assert other_key.status_code == 404  # noqa: PLR2004
