"""
License activation server using FastAPI.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI

from keygate.common.clock import utcnow
from keygate.common.config import Config
from keygate.common.logging_utils import setup_logger
from keygate.server.database import create_db_engine, init_db
from keygate.server.persistence import LicenseRepository
from keygate.server.rate_limiter import InMemorySlidingWindowStore, RateLimiterService

from .routes import LicenseRoutes
from .services import LicenseService

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from keygate.common.clock import Clock
    from keygate.common.interfaces import ILicenseRepository


class LicenseServer:
    """Main license server class wiring storage, rate limiting and routes.

    Every collaborator can be injected; anything left out is built from
    ``config``.
    """

    def __init__(  # noqa: PLR0913
        self,
        config: Config | None = None,
        engine: Engine | None = None,
        repository: ILicenseRepository | None = None,
        rate_limiter: RateLimiterService | None = None,
        clock: Clock = utcnow,
        log_level: int | None = None,
    ):
        self.config = config or Config()
        self.logger = logging.getLogger("keygate")
        setup_logger(
            self.logger, log_level if log_level is not None else self.config.LOG_LEVEL
        )

        self.engine = engine or create_db_engine(config=self.config)
        init_db(self.engine)
        self.repository = repository or LicenseRepository(self.engine)

        if rate_limiter is None:
            store = InMemorySlidingWindowStore() if self.config.RATE_LIMIT_ENABLED else None
            rate_limiter = RateLimiterService(store, self.config.RATE_LIMITS)
        self.rate_limiter = rate_limiter

        self.service = LicenseService(
            config=self.config,
            repository=self.repository,
            rate_limiter=self.rate_limiter,
            clock=clock,
        )

        self.app = FastAPI(title="KeyGate", version=self.config.API_VERSION)
        self.routes = LicenseRoutes(self.service, self.rate_limiter, self.config)
        self.routes.setup_routes(self.app)

        if not self.config.ADMIN_PASSWORD:
            self.logger.info("No admin password set, admin endpoints are disabled")
        self.logger.info(
            "License API %s ready under %s",
            self.config.API_VERSION,
            self.config.API_PREFIX,
        )


def create_app(config: Config | None = None, **kwargs: object) -> FastAPI:
    """Build the FastAPI application, e.g. for ``uvicorn --factory``."""
    return LicenseServer(config=config, **kwargs).app  # type: ignore[arg-type]
