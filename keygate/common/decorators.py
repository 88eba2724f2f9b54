"""License decorators for function protection.
"""

from __future__ import annotations

import logging
import time
from functools import wraps
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

from keygate.common.exceptions import LicenseNotActiveError

logger = logging.getLogger(__name__)


def _resolve_client(
    license_client: Any | Callable[..., Any] | str, func: Callable, args: tuple
) -> Any:
    if isinstance(license_client, str):
        # Attribute name on ``self``
        if not args:
            msg = f"Cannot get client attribute '{license_client}' without self"
            raise ValueError(msg)
        return getattr(args[0], license_client)
    if hasattr(license_client, "is_license_active"):
        return license_client
    if args and hasattr(args[0], func.__name__):
        # Method call: the factory may want ``self``
        try:
            return license_client(args[0])
        except TypeError:
            return license_client()
    return license_client()


def _deny(error_message: str, *, raise_exception: bool) -> None:
    if raise_exception:
        raise LicenseNotActiveError(error_message)
    logger.warning("License check failed: %s", error_message)


def requires_active_license(
    license_client: Any | Callable[..., Any] | str,
    error_message: str = "License is not active",
    *,
    raise_exception: bool = True,
) -> Callable:
    """Decorator that ensures function runs only when license is active.

    Args:
        license_client: LicenseClient instance, callable that returns one, or
            the name of the attribute holding it on ``self``
        error_message: Message to show when license is not active
        raise_exception: Whether to raise exception or return None

    Returns:
        Decorated function that only executes when license is active
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            client = _resolve_client(license_client, func, args)
            if not client.is_license_active():
                _deny(error_message, raise_exception=raise_exception)
                return None
            return func(*args, **kwargs)

        return wrapper

    return decorator


def license_protected(
    get_license_client: Callable[..., Any],
    error_message: str = "License is not active",
    *,
    raise_exception: bool = True,
) -> Callable:
    """Decorator that gets license client dynamically and checks license status."""

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            license_client = get_license_client()
            if not license_client.is_license_active():
                _deny(error_message, raise_exception=raise_exception)
                return None
            return func(*args, **kwargs)

        return wrapper

    return decorator


def license_retry_on_fail(
    license_client: Any,
    max_retries: int = 3,
    retry_delay: float = 1.0,
) -> Callable:
    """Decorator that re-validates the license and retries before giving up.

    Args:
        license_client: LicenseClient instance
        max_retries: Maximum number of re-validation attempts
        retry_delay: Delay between attempts in seconds
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if license_client.is_license_active():
                return func(*args, **kwargs)
            for attempt in range(1, max_retries + 1):
                if license_client.refresh():
                    return func(*args, **kwargs)
                if attempt < max_retries:
                    time.sleep(retry_delay)
            msg = f"License could not be validated after {max_retries} attempts"
            raise LicenseNotActiveError(msg)

        return wrapper

    return decorator
