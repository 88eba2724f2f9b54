"""
Basic usage example of LicenseClient.

Activates a license on this site's domain, validates it and prints the
status panel data. Expects a running server (``keygate serve``) and a key
issued with ``keygate create-license``.
"""

import logging
import os
import sys

from keygate.client import LicenseClient
from keygate.common.exceptions import LicenseClientError


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger(__name__)

    client = LicenseClient(
        license_key=os.environ["KEYGATE_LICENSE_KEY"],
        product_slug=os.getenv("KEYGATE_PRODUCT_SLUG", "my-plugin"),
        domain=os.getenv("KEYGATE_DOMAIN", "localhost"),
        log_level=logging.INFO,
    )

    try:
        activation = client.activate()
        logger.info(
            "Activated on %s, %s days remaining, %s domain changes left",
            activation["domain"],
            activation["days_remaining"],
            activation["domain_changes_remaining"],
        )

        result = client.validate()
        logger.info("License valid: %s (%s)", result["valid"], result["status"])

        status = client.status()
        logger.info("Expires at: %s", status["validity"]["expires_at"])
    except LicenseClientError as e:
        logger.error("License request failed: %s (%s)", e.message, e.code)  # noqa: TRY400
        sys.exit(1)


if __name__ == "__main__":
    main()
