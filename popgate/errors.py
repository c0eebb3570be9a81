# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Exception hierarchy for the POP3 engine.

Advisory failures (missing capabilities, absent APOP challenge, a rejected
liveness probe) never surface as exceptions.  Everything here is terminal
for the operation that raised it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from popgate.auth import AuthAttempt


class Pop3Error(Exception):
    """Base class for all popgate errors."""


class TransportError(Pop3Error):
    """Raised when the line transport fails (reset, EOF, socket error)."""


class TransportTimeoutError(TransportError):
    """Raised when a read or write exceeds the per-operation timeout."""


class ConnectError(Pop3Error):
    """Raised when the connect pipeline cannot establish a session."""


class AuthenticationError(ConnectError):
    """Raised when the server rejects authentication.

    Attributes:
        attempts: Every exchange tried before giving up, in order.
    """

    def __init__(
        self, message: str, attempts: tuple[AuthAttempt, ...] = ()
    ) -> None:
        super().__init__(message)
        self.attempts = attempts


class FolderError(Pop3Error):
    """Raised on invalid folder operations (open twice, not connected)."""


class FolderNotFoundError(FolderError):
    """Raised when opening a folder other than INBOX."""
