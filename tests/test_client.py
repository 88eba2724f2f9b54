from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

import pytest
import requests

from conftest import LICENSE_KEY, PRODUCT_SLUG
from keygate.client import LicenseClient
from keygate.common.exceptions import LicenseClientError

if TYPE_CHECKING:
    from fastapi.testclient import TestClient

    from keygate.server.database import License


class Ticker:
    """Monotonic clock driven by the test."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeResponse:
    def __init__(self, status_code: int, body: Any = None, text: str | None = None):
        self.status_code = status_code
        self._body = body
        self._text = text

    def json(self) -> Any:
        if self._text is not None:
            msg = "not json"
            raise ValueError(msg)
        return self._body


class FakeSession:
    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def post(self, url: str, json: dict[str, Any], timeout: float) -> FakeResponse:
        self.calls.append((url, json))
        # The last response repeats
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def _client(session: Any, **kwargs: Any) -> LicenseClient:
    return LicenseClient(
        LICENSE_KEY,
        PRODUCT_SLUG,
        "example.com",
        server_url="http://testserver/",
        session=session,
        **kwargs,
    )


@pytest.fixture
def live_client(
    client: TestClient, make_license: Callable[..., License]
) -> Callable[..., LicenseClient]:
    """LicenseClient talking to the in-process server."""
    make_license()
    return lambda **kwargs: _client(client, **kwargs)


def test_activate_validate_deactivate_against_server(
    live_client: Callable[..., LicenseClient],
) -> None:
    license_client = live_client()

    activated = license_client.activate()
    assert activated["is_new_activation"] is True
    assert license_client.is_license_active()

    validated = license_client.validate()
    assert validated["valid"] is True
    assert validated["domain"] == "example.com"

    status = license_client.status()
    assert status["activation"]["domain"] == "example.com"

    deactivated = license_client.deactivate("Uninstalled")
    assert deactivated["reason"] == "Uninstalled"
    assert license_client.last_result == deactivated


def test_server_errors_raise_client_errors(
    live_client: Callable[..., LicenseClient],
) -> None:
    license_client = live_client()
    with pytest.raises(LicenseClientError) as exc_info:
        license_client.validate()
    assert exc_info.value.code == "NOT_ACTIVATED"
    assert exc_info.value.status_code == 403  # noqa: PLR2004


def test_is_license_active_caches_until_interval(
    live_client: Callable[..., LicenseClient],
) -> None:
    ticker = Ticker()
    errors: list[Exception] = []
    license_client = live_client(
        validate_interval=60.0, clock=ticker, on_error_callback=errors.append
    )

    assert license_client.is_license_active() is False
    assert [e.code for e in errors] == ["NOT_ACTIVATED"]  # type: ignore[attr-defined]

    license_client.activate()
    license_client.http.post(  # type: ignore[attr-defined]
        "/api/v2/licenses/deactivate",
        json={"license_key": LICENSE_KEY, "product_slug": PRODUCT_SLUG, "domain": "example.com"},
    )
    # Still answered from the cached activation
    assert license_client.is_license_active() is True

    ticker.now += 60.0
    assert license_client.is_license_active() is False
    assert len(errors) == 2  # noqa: PLR2004


def test_network_error() -> None:
    session = FakeSession(requests.ConnectionError("connection refused"))
    license_client = _client(session)
    with pytest.raises(LicenseClientError) as exc_info:
        license_client.activate()
    assert exc_info.value.code == "NETWORK_ERROR"
    assert session.calls[0][0] == "http://testserver/api/v2/licenses/activate"


def test_non_json_response() -> None:
    license_client = _client(FakeSession(FakeResponse(502, text="Bad Gateway")))
    with pytest.raises(LicenseClientError) as exc_info:
        license_client.status()
    assert exc_info.value.code == "INVALID_RESPONSE"
    assert exc_info.value.status_code == 502  # noqa: PLR2004


def test_json_body_that_is_not_an_object() -> None:
    license_client = _client(FakeSession(FakeResponse(200, ["not", "an", "object"])))
    with pytest.raises(LicenseClientError) as exc_info:
        license_client.validate()
    assert exc_info.value.code == "INVALID_RESPONSE"
    assert exc_info.value.status_code == 200  # noqa: PLR2004


def test_malformed_error_envelope() -> None:
    session = FakeSession(FakeResponse(503, {"success": False, "error": "maintenance"}))
    with pytest.raises(LicenseClientError) as exc_info:
        _client(session).activate()
    assert exc_info.value.code == "UNKNOWN_ERROR"
    assert exc_info.value.message == "Request failed with HTTP 503"


def test_refresh_reports_invalid_license_without_raising() -> None:
    expired = {
        "success": True,
        "data": {"valid": False, "status": "expired"},
        "message": "License has expired",
    }
    session = FakeSession(FakeResponse(200, expired))
    license_client = _client(session)

    assert license_client.refresh() is False
    assert license_client.last_result == {"valid": False, "status": "expired"}
    assert session.calls[0][1] == {
        "license_key": LICENSE_KEY,
        "product_slug": PRODUCT_SLUG,
        "domain": "example.com",
    }


def test_background_validation_thread() -> None:
    valid = {"success": True, "data": {"valid": True}}
    session = FakeSession(FakeResponse(200, valid))
    license_client = _client(session, validate_interval=0.01)

    license_client.start_in_thread()
    license_client.start_in_thread()
    license_client.stop_thread(timeout=5)

    assert len(session.calls) >= 1
    assert license_client.is_license_active() is True
