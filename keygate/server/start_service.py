"""
Entry point for the license server.
"""

from __future__ import annotations

import uvicorn

from keygate.common.config import Config

from .core import LicenseServer


def start_server(config: Config | None = None) -> None:
    """Start the license server."""
    if config is None:
        config = Config()
    server = LicenseServer(config=config)
    server.logger.info(
        "Server starting on http://%s:%s", config.SERVER_HOST, config.SERVER_PORT
    )
    uvicorn.run(
        server.app,
        host=config.SERVER_HOST,
        port=config.SERVER_PORT,
        log_level=config.LOG_LEVEL,
    )
