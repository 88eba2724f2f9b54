"""
License API client for plugins and other server-side consumers.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

import requests

from keygate.common.config import Config
from keygate.common.exceptions import LicenseClientError
from keygate.common.logging_utils import mask_license_key, setup_logger

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_VALIDATE_INTERVAL = 3600.0


class LicenseClient:
    """Activates, validates and deactivates one license on one domain.

    ``is_license_active`` answers from the last validation and re-validates
    once the answer is older than ``validate_interval`` seconds.
    """

    def __init__(  # noqa: PLR0913
        self,
        license_key: str,
        product_slug: str,
        domain: str,
        server_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        validate_interval: float = DEFAULT_VALIDATE_INTERVAL,
        on_error_callback: Callable[[Exception], None] | None = None,
        session: requests.Session | None = None,
        log_level: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        config = Config()
        self.server_url = (server_url or config.SERVER_URL).rstrip("/")
        self.api_prefix = config.API_PREFIX
        self.license_key = license_key
        self.product_slug = product_slug
        self.domain = domain
        self.timeout = timeout
        self.validate_interval = validate_interval
        self.on_error_callback = on_error_callback
        self.http = session or requests.Session()
        self.clock = clock

        self.logger = logging.getLogger(__name__)
        setup_logger(self.logger, log_level if log_level is not None else config.LOG_LEVEL)

        self.last_result: dict[str, Any] | None = None
        self.last_checked_at: float | None = None
        self._valid = False
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # --- API calls ---

    def activate(self) -> dict[str, Any]:
        """Bind the license to ``domain``; safe to call again on the same domain."""
        data = self._post("/licenses/activate", self._payload(domain=self.domain))
        self._remember(data, valid=True)
        self.logger.info(
            "License %s activated on %s", mask_license_key(self.license_key), self.domain
        )
        return data

    def validate(self) -> dict[str, Any]:
        data = self._post("/licenses/validate", self._payload(domain=self.domain))
        self._remember(data, valid=bool(data.get("valid")))
        return data

    def deactivate(self, reason: str | None = None) -> dict[str, Any]:
        payload = self._payload(domain=self.domain)
        if reason:
            payload["reason"] = reason
        data = self._post("/licenses/deactivate", payload)
        self._remember(data, valid=False)
        return data

    def status(self) -> dict[str, Any]:
        return self._post("/licenses/status", self._payload())

    # --- Cached state ---

    def is_license_active(self) -> bool:
        """Check if the license is currently usable on ``domain``."""
        if self.last_checked_at is None or (
            self.clock() - self.last_checked_at >= self.validate_interval
        ):
            return self.refresh()
        return self._valid

    def refresh(self) -> bool:
        """Re-validate now. Errors mark the license inactive instead of raising."""
        try:
            self.validate()
        except LicenseClientError as e:
            self.logger.warning("License validation failed: %s (%s)", e.message, e.code)
            self._remember(None, valid=False)
            if self.on_error_callback:
                self.on_error_callback(e)
        return self._valid

    # --- Background validation ---

    def run(self) -> None:
        """Validate every ``validate_interval`` seconds until stopped."""
        self.refresh()
        while not self._stop.wait(self.validate_interval):
            self.refresh()

    def start_in_thread(self) -> None:
        """Start periodic validation in a separate thread."""
        if self._thread and self._thread.is_alive():
            self.logger.warning("Client is already running in a thread")
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, daemon=True)
        self._thread.start()
        self.logger.info("Client started in background thread")

    def stop_thread(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    # --- Internals ---

    def _payload(self, **extra: str) -> dict[str, str]:
        return {
            "license_key": self.license_key,
            "product_slug": self.product_slug,
            **extra,
        }

    def _remember(self, data: dict[str, Any] | None, *, valid: bool) -> None:
        self.last_result = data
        self.last_checked_at = self.clock()
        self._valid = valid

    def _post(self, path: str, payload: dict[str, str]) -> dict[str, Any]:
        url = f"{self.server_url}{self.api_prefix}{path}"
        try:
            r = self.http.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise LicenseClientError("NETWORK_ERROR", str(e)) from e

        try:
            body = r.json()
        except ValueError as e:
            msg = f"Unexpected non-JSON response (HTTP {r.status_code})"
            raise LicenseClientError("INVALID_RESPONSE", msg, r.status_code) from e

        if not isinstance(body, dict):
            msg = f"Unexpected response body (HTTP {r.status_code})"
            raise LicenseClientError("INVALID_RESPONSE", msg, r.status_code)

        if not body.get("success"):
            error = body.get("error")
            if not isinstance(error, dict):
                error = {}
            raise LicenseClientError(
                error.get("code", "UNKNOWN_ERROR"),
                error.get("message", f"Request failed with HTTP {r.status_code}"),
                r.status_code,
                error.get("details"),
            )
        return body.get("data") or {}
