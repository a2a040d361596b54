"""Logging utilities for ssokit.

Modules log through ``logging.getLogger("ssokit.<area>")``; this module
configures the shared ``ssokit`` logger and redacts secrets before they
reach log output.
"""

from __future__ import annotations

import logging
import sys

from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


if TYPE_CHECKING:
    from .config import LogSettings


class _LoggerHolder:
    """Holder for the global logger instance."""

    instance: logging.Logger | None = None


# "none" silences the package logger entirely.
_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "none": logging.CRITICAL + 10,
}


def get_logger() -> logging.Logger:
    """Get the ssokit logger instance.

    Returns
    -------
    logging.Logger
        The ``ssokit`` logger configured with a stream handler.
    """
    if _LoggerHolder.instance is None:
        logger = logging.getLogger("ssokit")
        logger.setLevel(logging.WARNING)

        # Only add handler if none exists
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setLevel(logging.DEBUG)
            handler.setFormatter(logging.Formatter("%(name)s - %(levelname)s - %(message)s"))
            logger.addHandler(handler)

        _LoggerHolder.instance = logger

    return _LoggerHolder.instance


def set_level(level: int | str) -> None:
    """Set the logging level.

    Parameters
    ----------
    level : int or str
        A ``logging`` level or one of "debug", "info", "warning",
        "error" and "none".
    """
    if isinstance(level, str):
        try:
            level = _LEVELS[level.lower()]
        except KeyError:
            msg = f"Unknown log level: {level}"
            raise ValueError(msg) from None
    get_logger().setLevel(level)


def log_delegate_error(event: str, delegate: object, exc: BaseException) -> None:
    """Log a delegate error with standardized format.

    Parameters
    ----------
    event : str
        The delegate method that was being called.
    delegate : object
        The delegate that raised.
    exc : BaseException
        The exception that was raised.
    """
    get_logger().error(
        "Delegate error in '%s' on %s: %s",
        event,
        type(delegate).__name__,
        exc,
        exc_info=exc,
    )


def enable_debug() -> None:
    """Enable verbose logging of session, flow and token endpoint activity."""
    set_level(logging.DEBUG)


def configure_from_settings(settings: LogSettings) -> logging.Logger:
    """Apply ``LogSettings`` to the ssokit logger.

    Parameters
    ----------
    settings : LogSettings
        The logging section of the configuration.

    Returns
    -------
    logging.Logger
        The configured logger.
    """
    logger = get_logger()
    set_level(settings.level)

    parts = ["%(name)s"]
    if settings.include_filename:
        parts.append("%(filename)s:%(lineno)d")
    if settings.include_function:
        parts.append("%(funcName)s")
    fmt = " - ".join([":".join(parts), "%(levelname)s", "%(message)s"])
    for handler in logger.handlers:
        handler.setFormatter(logging.Formatter(fmt))
    return logger


# Keys that should be redacted in log output for security
_SENSITIVE_KEYS = frozenset(
    {
        "secret",
        "password",
        "token",
        "code",
        "credential",
        "assertion",
        "verifier",
    }
)

_REDACTED = "[REDACTED]"


def _is_sensitive(key: str) -> bool:
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


def redact_sensitive_data(
    data: dict[str, Any] | list[Any] | str | None, max_depth: int = 5
) -> dict[str, Any] | list[Any] | str | None:
    """Redact sensitive values from data for safe logging.

    Recursively traverses dicts/lists and replaces values for keys
    that match sensitive patterns with "[REDACTED]".

    Parameters
    ----------
    data : dict or list or str or None
        The data to redact.
    max_depth : int, optional
        Maximum recursion depth (default: 5).

    Returns
    -------
    dict or list or str or None
        A copy of the data with sensitive values redacted.
    """
    if max_depth <= 0:
        return "[MAX_DEPTH]"

    if data is None:
        return None

    if isinstance(data, dict):
        result: dict[str, Any] = {}
        for k, v in data.items():
            if _is_sensitive(k if isinstance(k, str) else str(k)):
                result[k] = _REDACTED
            else:
                result[k] = redact_sensitive_data(v, max_depth - 1)
        return result

    if isinstance(data, list):
        return [redact_sensitive_data(item, max_depth - 1) for item in data]

    return data


def redact_url(url: str) -> str:
    """Redact sensitive query parameters (``code``, ``id_token_hint``, ...) of a URL."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (key, _REDACTED if _is_sensitive(key) else value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe="[]")))
