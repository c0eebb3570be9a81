# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""POP3 session: connect pipeline and liveness gate.

A session owns one transport for its whole life and runs the connect
pipeline strictly in order::

    transport -> greeting -> CAPA -> authentication -> AUTHENTICATED

Advisory steps (``CAPA``, the APOP challenge) degrade silently.
Authentication and transport failures close the transport, leave the
session ``FAILED`` and propagate to the caller.

Sessions are not thread-safe; use one session per concurrent connection.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from types import TracebackType
from typing import TYPE_CHECKING

from popgate.auth import (
    AuthResult,
    Authenticator,
    Mechanism,
    apop_digest,
)
from popgate.capabilities import query_capabilities
from popgate.errors import (
    AuthenticationError,
    ConnectError,
    TransportError,
)
from popgate.folder import Folder
from popgate.greeting import greeting_accepted, parse_greeting
from popgate.microsoft_oauth2 import MicrosoftOAuth2TokenProvider
from popgate.response import parse_response
from popgate.transport import (
    LineTransport,
    TransportFactory,
    open_socket_transport,
)


if TYPE_CHECKING:
    from popgate.config import Pop3Config
    from popgate.microsoft_oauth2 import TokenProvider


logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Connection state of a session."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"
    CLOSED = "closed"


class Session:
    """One POP3 connection, from greeting to ``QUIT``.

    Attributes:
        config: Session configuration.
        state: Current connection state.
        greeting: Raw greeting line (None before connect).
        challenge: APOP challenge from the greeting, if any.
        capabilities: Names from ``CAPA``; empty if skipped or declined.
        mechanism: Mechanism that authenticated the session.
        auth_result: Full authentication outcome.
    """

    def __init__(
        self,
        config: Pop3Config,
        *,
        transport_factory: TransportFactory = open_socket_transport,
        token_provider: TokenProvider | None = None,
        digest: Callable[[str, str], str] = apop_digest,
    ) -> None:
        self.config = config
        self.state = SessionState.DISCONNECTED
        self.greeting: str | None = None
        self.challenge: str | None = None
        self.capabilities: frozenset[str] = frozenset()
        self.mechanism: Mechanism | None = None
        self.auth_result: AuthResult | None = None

        self._transport_factory = transport_factory
        self._transport: LineTransport | None = None
        self._capabilities_queried = False
        self._digest = digest

        if token_provider is None and config.microsoft_oauth2 is not None:
            oauth2 = config.microsoft_oauth2
            token_provider = MicrosoftOAuth2TokenProvider(
                tenant_id=oauth2.tenant_id,
                client_id=oauth2.client_id,
                client_secret=oauth2.client_secret,
            )
        self._token_provider = token_provider

    def __enter__(self) -> Session:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def is_connected(self) -> bool:
        """True once authenticated and until closed or failed.

        This only reflects local state; use :meth:`probe` to ask the server.
        """
        return self.state is SessionState.AUTHENTICATED

    def connect(
        self, username: str | None = None, password: str | None = None
    ) -> AuthResult:
        """Open the connection and authenticate.

        Args:
            username: Overrides ``config.username``.
            password: Overrides ``config.password``.

        Returns:
            The authentication outcome.

        Raises:
            ConnectError: If the session is not fresh or the server
                refuses the connection in its greeting.
            AuthenticationError: If the credentials are rejected.
            TransportError: If the connection fails or times out.
        """
        if self.state is not SessionState.DISCONNECTED:
            raise ConnectError(f"Session already used ({self.state.value})")

        username = self.config.username if username is None else username
        password = self.config.password if password is None else password

        try:
            self._transport = self._transport_factory(
                self.config.host,
                self.config.port,
                connect_timeout=self.config.connect_timeout_seconds,
                timeout=self.config.timeout_seconds,
            )
            self._read_greeting()
            self._negotiate_capabilities()
            authenticator = Authenticator(
                self.config,
                digest=self._digest,
                token_provider=self._token_provider,
            )
            result = authenticator.authenticate(
                self._transport,
                username,
                password,
                capabilities=self.capabilities,
                challenge=self.challenge,
                capa_skipped=self.config.disable_capa,
            )
        except AuthenticationError as e:
            logger.warning(
                "Authentication to %s failed: %s", self.config.host, e
            )
            self._abort()
            raise
        except (ConnectError, TransportError) as e:
            logger.warning("Connection to %s failed: %s", self.config.host, e)
            self._abort()
            raise
        except Exception:
            self._abort()
            raise

        self.mechanism = result.mechanism
        self.auth_result = result
        self.state = SessionState.AUTHENTICATED
        logger.info(
            "Authenticated to %s:%d as %s via %s%s",
            self.config.host,
            self.config.port,
            username,
            result.mechanism.value,
            " (split-format fallback)" if result.fallback_used else "",
        )
        return result

    def probe(self) -> bool:
        """Check that the server still answers commands (``NOOP``).

        Has no effect on mailbox state and may be called any number of
        times.  A transport failure closes the session.

        Returns:
            True if the server acknowledged ``NOOP``.
        """
        if not self.is_connected or self._transport is None:
            return False

        try:
            self._transport.send_line("NOOP")
            response = parse_response(self._transport.read_line())
        except TransportError as e:
            logger.warning("NOOP to %s failed: %s", self.config.host, e)
            self._abort()
            return False

        if not response.ok:
            logger.debug("NOOP rejected: %s", response.text or "-ERR")
        return response.ok

    def folder(self, name: str = "INBOX") -> Folder:
        """Return a (closed) folder handle bound to this session."""
        return Folder(self, name)

    def close(self) -> None:
        """Send ``QUIT`` if authenticated, then close the transport.

        Idempotent.  A failing ``QUIT`` is logged, never raised.
        """
        if self.state is SessionState.CLOSED:
            return

        if self.is_connected and self._transport is not None:
            try:
                self._transport.send_line("QUIT")
                response = parse_response(self._transport.read_line())
                if not response.ok:
                    logger.warning(
                        "QUIT returned error: %s", response.text or "-ERR"
                    )
            except TransportError as e:
                logger.warning("Error during POP3 QUIT: %s", e)

        self._close_transport()
        self.state = SessionState.CLOSED
        logger.debug("Session to %s closed", self.config.host)

    # -- pipeline stages --------------------------------------------------

    def _read_greeting(self) -> None:
        assert self._transport is not None
        line = self._transport.read_line()
        if not greeting_accepted(line):
            raise ConnectError(f"Server refused connection: {line}")

        self.greeting = line
        self.challenge = parse_greeting(line)
        self.state = SessionState.CONNECTED
        logger.debug(
            "Greeting from %s (APOP challenge %s)",
            self.config.host,
            "present" if self.challenge else "absent",
        )

    def _negotiate_capabilities(self) -> None:
        assert self._transport is not None
        if self._capabilities_queried:
            return
        self._capabilities_queried = True
        if self.config.disable_capa:
            logger.debug("CAPA disabled by configuration")
            return
        self.capabilities = query_capabilities(self._transport)

    def _abort(self) -> None:
        self.mechanism = None
        self.auth_result = None
        self._close_transport()
        self.state = SessionState.FAILED

    def _close_transport(self) -> None:
        transport = self._transport
        self._transport = None
        if transport is not None and not transport.closed:
            transport.close()
