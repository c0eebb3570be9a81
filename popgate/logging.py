# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Logging configuration with credential redaction.

POP3 sends credentials in the clear on the command line (``PASS``,
``APOP``, ``AUTH XOAUTH2``), and the transport logs every wire line at
DEBUG.  Anything registered with :class:`SecretFilter` is replaced by
``[REDACTED]`` before a handler formats the record.

Usage:
    # In entry points (CLI)
    from popgate.logging import configure_logging
    configure_logging(level=logging.DEBUG)

    # In library modules
    import logging
    logger = logging.getLogger(__name__)
"""

import logging
import re
from typing import ClassVar


class SecretFilter(logging.Filter):
    """Logging filter that redacts registered secrets from log output.

    The registry is class-level so that secrets registered by the config
    loader or the authenticator apply to every handler carrying the filter.

    Example:
        SecretFilter.register_secret("hunter2")
        logger.debug("C: PASS %s", "hunter2")
        # Output: "C: PASS [REDACTED]"
    """

    _secrets: ClassVar[set[str]] = set()
    _pattern: ClassVar[re.Pattern[str] | None] = None

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact registered secrets in the message and its arguments.

        Args:
            record: The log record to filter.

        Returns:
            Always True (records are modified, never dropped).
        """
        if self._pattern is not None:
            record.msg = self._pattern.sub("[REDACTED]", str(record.msg))
            if record.args:
                record.args = tuple(
                    self._pattern.sub("[REDACTED]", str(arg))
                    if isinstance(arg, str)
                    else arg
                    for arg in record.args
                )
        return True

    @classmethod
    def register_secret(cls, secret: str | None) -> None:
        """Register a secret to be redacted from all log output.

        Args:
            secret: The secret string.  Empty values and None are ignored.
        """
        if secret and secret not in cls._secrets:
            cls._secrets.add(secret)
            cls._rebuild_pattern()

    @classmethod
    def clear_secrets(cls) -> None:
        """Clear all registered secrets. Primarily for testing."""
        cls._secrets.clear()
        cls._pattern = None

    @classmethod
    def _rebuild_pattern(cls) -> None:
        # Longest first: an encoded XOAUTH2 credential may contain a
        # registered token as a substring.
        ordered = sorted(cls._secrets, key=len, reverse=True)
        cls._pattern = re.compile("|".join(re.escape(s) for s in ordered))


def configure_logging(
    level: int = logging.INFO,
    format_string: str | None = None,
    add_secret_filter: bool = True,
) -> None:
    """Configure the root logger for command-line use.

    Args:
        level: The logging level (``logging.DEBUG`` shows the POP3 dialogue).
        format_string: Custom format string. If None, uses default format.
        add_secret_filter: Whether to add the SecretFilter to redact secrets.
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(format_string))

    if add_secret_filter:
        handler.addFilter(SecretFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)

    root_logger.addHandler(handler)
