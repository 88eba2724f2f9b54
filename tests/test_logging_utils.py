import logging

import pytest

from keygate.common.logging_utils import (
    SecretMaskingFilter,
    mask_email,
    mask_license_key,
    setup_logger,
)


def test_mask_license_key() -> None:
    assert mask_license_key("ABCD-EFGH-JKLM-5678") == "ABCD-****-****-5678"
    assert mask_license_key("garbage") == "****"
    assert mask_license_key(None) is None


@pytest.mark.parametrize(
    ("email", "expected"),
    [
        ("john.doe@example.com", "j*******@e******.com"),
        ("jo@ex.org", "j*@e*.org"),
        ("a@b.io", "a@b.io"),
        ("averyveryverylongname@domain.com", "a*******@d*****.com"),
    ],
)
def test_mask_email(email: str, expected: str) -> None:
    assert mask_email(email) == expected


def test_mask_email_passthrough() -> None:
    assert mask_email(None) is None
    assert mask_email("") is None
    assert mask_email("not-an-email") == "not-an-email"


def test_secret_masking_filter_rewrites_keys() -> None:
    record = logging.LogRecord(
        "keygate", logging.INFO, __file__, 1, "Activated %s on %s",
        ("ABCD-EFGH-JKLM-5678", "example.com"), None,
    )
    assert SecretMaskingFilter().filter(record)
    assert record.getMessage() == "Activated ABCD-****-****-5678 on example.com"


def test_secret_masking_filter_leaves_other_messages() -> None:
    record = logging.LogRecord(
        "keygate", logging.INFO, __file__, 1, "Count %d", (3,), None
    )
    SecretMaskingFilter().filter(record)
    assert record.args == (3,)
    assert record.getMessage() == "Count 3"


def test_setup_logger_is_idempotent() -> None:
    logger = logging.getLogger("keygate.tests.setup")
    setup_logger(logger, logging.DEBUG)
    setup_logger(logger, logging.DEBUG)
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert len([f for f in logger.filters if isinstance(f, SecretMaskingFilter)]) == 1
    assert any(isinstance(f, SecretMaskingFilter) for f in logger.handlers[0].filters)
