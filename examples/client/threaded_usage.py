"""
Threaded usage example of LicenseClient.

Validation runs in a background thread while the main thread calls a
feature guarded by ``requires_active_license``.
"""

import logging
import os
import sys
import time

from keygate import LicenseClient, requires_active_license
from keygate.common.exceptions import LicenseNotActiveError


def error_callback(error: Exception) -> None:
    """Custom error handler for license client errors."""
    logger = logging.getLogger(__name__)
    logger.error("License client error: %s", error)


client = LicenseClient(
    license_key=os.environ["KEYGATE_LICENSE_KEY"],
    product_slug=os.getenv("KEYGATE_PRODUCT_SLUG", "my-plugin"),
    domain=os.getenv("KEYGATE_DOMAIN", "localhost"),
    log_level=logging.INFO,
    on_error_callback=error_callback,
    validate_interval=10,  # Re-validate every 10 seconds
)


@requires_active_license(client, "Premium export requires an active license")
def premium_export() -> str:
    return "exported"


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger(__name__)

    client.activate()
    client.start_in_thread()
    logger.info("License client started in background thread")

    try:
        for i in range(6):
            logger.info("Main thread working... Iteration %d", i + 1)
            try:
                logger.info("Premium export: %s", premium_export())
            except LicenseNotActiveError as e:
                logger.warning("%s", e)
            time.sleep(10)
    finally:
        client.stop_thread(timeout=5)

    logger.info("Threaded usage example completed")
    sys.exit(0)


if __name__ == "__main__":
    main()
