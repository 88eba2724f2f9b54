"""
Configuration settings for the license activation service.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Central configuration class for all system settings."""

    def __init__(self) -> None:
        # File paths
        self.BASE_DIR: Path = Path(__file__).parent.parent
        self.DATA_DIR: Path = Path(
            os.getenv("KEYGATE_DATA_DIR", str(self.BASE_DIR / "data"))
        )

        # Database settings
        self.DATABASE_URL: str = os.getenv(
            "KEYGATE_DATABASE_URL",
            os.getenv("DATABASE_URL", f"sqlite:///{self.DATA_DIR / 'keygate.db'}"),
        )
        self.DB_POOL_RECYCLE: int = 300  # Recycle connections every 5 minutes
        self.DB_CONNECT_TIMEOUT: int = 10  # Seconds, bounds every storage call
        self.ACTIVATION_MAX_ATTEMPTS: int = 5  # Optimistic-lock retries per request

        # Server settings
        self.ADMIN_PASSWORD: str | None = os.getenv("KEYGATE_ADMIN_PASSWORD")
        self.SERVER_HOST: str = os.getenv("KEYGATE_SERVER_HOST", "127.0.0.1")
        self.SERVER_PORT: int = int(os.getenv("KEYGATE_SERVER_PORT", "8000"))
        self.SERVER_URL: str = f"http://{self.SERVER_HOST}:{self.SERVER_PORT}"
        self.TRUST_PROXY_HEADERS: bool = _env_flag(
            "KEYGATE_TRUST_PROXY_HEADERS", "true"
        )

        # API surface
        self.API_VERSION: str = "2.0"
        self.API_TYPE: str = "server-to-server"
        self.API_PREFIX: str = "/api/v2"

        # Rate limiting: class -> (requests, window in seconds)
        self.RATE_LIMIT_ENABLED: bool = _env_flag("KEYGATE_RATE_LIMIT_ENABLED", "true")
        self.RATE_LIMITS: dict[str, tuple[int, int]] = {
            "general": (60, 3600),  # per client IP
            "activation": (60, 3600),  # per client IP
            "list": (60, 60),  # per client IP, read-heavy listings
            "failed": (60, 3600),  # per license key, brute-force protection
        }

        # License defaults for newly issued keys
        self.DEFAULT_VALIDITY_DAYS: int = 365
        self.DEFAULT_MAX_DOMAIN_CHANGES: int = 3
        self.LICENSE_KEY_GENERATION_ATTEMPTS: int = 10
        self.MAX_DEACTIVATION_REASON_LEN: int = 500

        # Logging
        self.LOG_LEVEL: int = logging.getLevelName(
            os.getenv("KEYGATE_LOG_LEVEL", "INFO").upper()
        )
        if not isinstance(self.LOG_LEVEL, int):
            self.LOG_LEVEL = logging.INFO

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")
