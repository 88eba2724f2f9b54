"""
Logging utilities for consistent logging setup across the application.

License keys are secrets: every handler installed here masks them, and the
``mask_*`` helpers are used wherever a key or an email is logged or returned.
"""

from __future__ import annotations

import logging
import re

LICENSE_KEY_PATTERN = re.compile(
    r"\b([A-Za-z0-9]{4})-[A-Za-z0-9]{4}-[A-Za-z0-9]{4}-([A-Za-z0-9]{4})\b"
)


def mask_license_key(license_key: str | None) -> str | None:
    """Mask the middle groups of a license key: ``ABCD-****-****-5678``."""
    if not license_key:
        return license_key
    match = LICENSE_KEY_PATTERN.fullmatch(license_key.strip())
    if match is None:
        return "****"
    return f"{match.group(1)}-****-****-{match.group(2)}"


def mask_email(email: str | None) -> str | None:
    """Mask an email for privacy: ``john.doe@example.com`` -> ``j*******@e******.com``."""
    if not email:
        return None
    local, _, domain = email.partition("@")
    if not domain:
        return email
    domain_name, _, tld = domain.partition(".")
    if not tld:
        return email

    masked_local = (
        local[0] + "*" * min(len(local) - 1, 7) if len(local) > 1 else local
    )
    masked_domain = (
        domain_name[0] + "*" * min(len(domain_name) - 1, 6)
        if len(domain_name) > 1
        else domain_name
    )
    return f"{masked_local}@{masked_domain}.{tld}"


class SecretMaskingFilter(logging.Filter):
    """Rewrite license keys in log records before any handler formats them."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = LICENSE_KEY_PATTERN.sub(r"\1-****-****-\2", message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def setup_logger(logger: logging.Logger, log_level: int) -> None:
    """
    Set up a logger with a StreamHandler and standard formatter.

    Args:
        logger: The logger instance to configure
        log_level: The logging level to set
    """
    logger.setLevel(log_level)
    if not any(isinstance(f, SecretMaskingFilter) for f in logger.filters):
        logger.addFilter(SecretMaskingFilter())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(log_level)
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.addFilter(SecretMaskingFilter())
        logger.addHandler(handler)
