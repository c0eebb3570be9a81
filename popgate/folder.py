# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Folder handle gated by the session liveness probe.

POP3 has a single mailbox, exposed as ``INBOX``.  Opening it first asks
the server for a ``NOOP``; a server that accepted the login but no longer
answers leaves the folder closed instead of raising.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from popgate.errors import FolderError, FolderNotFoundError


if TYPE_CHECKING:
    from popgate.session import Session


logger = logging.getLogger(__name__)

INBOX = "INBOX"


class FolderMode(Enum):
    """Open mode of a folder."""

    READ_ONLY = "read_only"
    READ_WRITE = "read_write"


class Folder:
    """The POP3 mailbox of a session.

    Attributes:
        session: Owning session.
        name: Folder name as requested.
        mode: Open mode, None while closed.
    """

    def __init__(self, session: Session, name: str = INBOX) -> None:
        self.session = session
        self.name = name
        self.mode: FolderMode | None = None

    def __repr__(self) -> str:
        state = self.mode.value if self.mode else "closed"
        return f"Folder({self.name!r}, {state})"

    @property
    def is_open(self) -> bool:
        """True while opened and the owning session is still connected."""
        return self.mode is not None and self.session.is_connected

    def exists(self) -> bool:
        """Only ``INBOX`` (case-insensitive) exists on a POP3 server."""
        return self.name.upper() == INBOX

    def open(self, mode: FolderMode = FolderMode.READ_ONLY) -> None:
        """Open the folder if the server passes the liveness probe.

        Returns normally in both cases; check :attr:`is_open` to see
        whether the open took effect.

        Args:
            mode: Requested open mode.

        Raises:
            FolderNotFoundError: If the folder is not ``INBOX``.
            FolderError: If the folder is already open or the session is
                not connected.
        """
        if not self.exists():
            raise FolderNotFoundError(f"No such POP3 folder: {self.name}")
        if self.is_open:
            raise FolderError(f"Folder {self.name} is already open")
        if not self.session.is_connected:
            raise FolderError("Session is not connected")

        if self.session.config.probe_before_open and not self.session.probe():
            logger.warning(
                "Server %s did not answer NOOP, %s left closed",
                self.session.config.host,
                self.name,
            )
            return

        self.mode = mode
        logger.debug("Opened %s (%s)", self.name, mode.value)

    def close(self) -> None:
        """Mark the folder closed.  No wire traffic; idempotent."""
        if self.mode is not None:
            logger.debug("Closed %s", self.name)
        self.mode = None
