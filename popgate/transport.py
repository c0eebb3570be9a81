# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Line transport for the POP3 dialogue.

The engine only needs four primitives from a transport: send one command
line, read one reply line, read a dot-terminated multi-line block, and
close.  :class:`LineTransport` captures that contract so tests can script a
server in memory; :class:`SocketLineTransport` is the real implementation.
"""

import logging
import socket
from collections.abc import Callable
from typing import BinaryIO, Protocol

from popgate.errors import TransportError, TransportTimeoutError


logger = logging.getLogger(__name__)

#: Upper bound on a single reply line (RFC 2449 allows 512 octets).
_MAX_LINE = 8192


class LineTransport(Protocol):
    """Blocking line-oriented transport owned by exactly one session."""

    @property
    def closed(self) -> bool: ...

    def send_line(self, line: str) -> None: ...

    def read_line(self) -> str: ...

    def read_multiline(self) -> list[str]: ...

    def close(self) -> None: ...


#: ``factory(host, port, connect_timeout=..., timeout=...)``
TransportFactory = Callable[..., LineTransport]


class SocketLineTransport:
    """CRLF line transport over a connected TCP socket.

    Every read and write is bounded by ``timeout``.  Closing the transport
    shuts the socket down first so that a read blocked in another thread
    returns immediately.

    Attributes:
        host: Remote host name, for diagnostics.
        port: Remote port.
    """

    def __init__(
        self,
        sock: socket.socket,
        host: str,
        port: int,
        timeout: float,
    ) -> None:
        self.host = host
        self.port = port
        self._sock: socket.socket | None = sock
        self._sock.settimeout(timeout)
        self._reader: BinaryIO | None = self._sock.makefile("rb")

    @property
    def closed(self) -> bool:
        return self._sock is None

    def send_line(self, line: str) -> None:
        """Send one command line, appending CRLF.

        Raises:
            TransportError: If the transport is closed or the write fails.
        """
        sock = self._require_socket()
        logger.debug("C: %s", line)
        try:
            sock.sendall(line.encode("utf-8") + b"\r\n")
        except TimeoutError as e:
            raise TransportTimeoutError(
                f"Write to {self.host} timed out"
            ) from e
        except OSError as e:
            raise TransportError(f"Write to {self.host} failed: {e}") from e

    def read_line(self) -> str:
        """Read one reply line without its line terminator.

        Raises:
            TransportTimeoutError: If no full line arrives within the timeout.
            TransportError: On EOF, an overlong line, or a socket error.
        """
        self._require_socket()
        assert self._reader is not None
        try:
            raw = self._reader.readline(_MAX_LINE + 1)
        except TimeoutError as e:
            raise TransportTimeoutError(
                f"Read from {self.host} timed out"
            ) from e
        except (OSError, ValueError) as e:
            # ValueError: the file object was closed under us by close().
            raise TransportError(f"Read from {self.host} failed: {e}") from e

        if not raw:
            raise TransportError(f"Connection closed by {self.host}")
        if len(raw) > _MAX_LINE:
            raise TransportError(f"Line from {self.host} exceeds {_MAX_LINE}")

        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        logger.debug("S: %s", line)
        return line

    def read_multiline(self) -> list[str]:
        """Read a dot-terminated block following a ``+OK`` status line.

        Byte-stuffed lines (leading ``..``) are unstuffed and the ``.``
        terminator is dropped.

        Returns:
            The block's lines in order.
        """
        lines: list[str] = []
        while True:
            line = self.read_line()
            if line == ".":
                return lines
            if line.startswith(".."):
                line = line[1:]
            lines.append(line)

    def close(self) -> None:
        """Close the socket.  Idempotent."""
        sock = self._sock
        if sock is None:
            return
        self._sock = None
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer already gone
            pass
        if self._reader is not None:
            self._reader.close()
            self._reader = None
        sock.close()
        logger.debug("Closed connection to %s:%d", self.host, self.port)

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise TransportError("Transport is closed")
        return self._sock


def open_socket_transport(
    host: str,
    port: int,
    *,
    connect_timeout: float,
    timeout: float,
) -> SocketLineTransport:
    """Connect to ``host:port`` and wrap the socket in a line transport.

    Args:
        host: Server host name.
        port: Server port.
        connect_timeout: Seconds allowed for the TCP handshake.
        timeout: Seconds allowed for each subsequent read or write.

    Raises:
        TransportTimeoutError: If the handshake times out.
        TransportError: If the connection cannot be established.
    """
    logger.debug("Connecting to %s:%d", host, port)
    try:
        sock = socket.create_connection((host, port), timeout=connect_timeout)
    except TimeoutError as e:
        raise TransportTimeoutError(
            f"Connection to {host}:{port} timed out"
        ) from e
    except OSError as e:
        raise TransportError(f"Cannot connect to {host}:{port}: {e}") from e
    return SocketLineTransport(sock, host, port, timeout)
