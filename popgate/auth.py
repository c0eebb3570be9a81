# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Authentication mechanism selection and exchanges.

Exactly one mechanism runs per connect attempt, chosen in priority order:

1. XOAUTH2, when token auth is enabled and the server advertises it in
   ``CAPA`` (or ``CAPA`` was skipped on purpose).
2. APOP, when enabled and the greeting carried a challenge.
3. USER/PASS.

XOAUTH2 first tries the single-line form ``AUTH XOAUTH2 <credential>``.
Servers that only implement the RFC 5034 two-step exchange reject it with
``-ERR``, so the authenticator retries once with ``AUTH XOAUTH2``, waits for
the ``+`` continuation, and sends the credential on its own line.  There is
no third attempt.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from popgate.errors import AuthenticationError, TransportError
from popgate.logging import SecretFilter
from popgate.response import Response, is_continuation, parse_response


if TYPE_CHECKING:
    from popgate.config import Pop3Config
    from popgate.microsoft_oauth2 import TokenProvider
    from popgate.transport import LineTransport


logger = logging.getLogger(__name__)


class Mechanism(Enum):
    """Authentication mechanisms, named by their wire keyword."""

    APOP = "APOP"
    USER = "USER"
    XOAUTH2 = "XOAUTH2"


class FormatVariant(Enum):
    """Wire format of a token exchange."""

    COMBINED = "combined"
    SPLIT = "split"


class AuthState(Enum):
    """Authenticator states for one connect attempt."""

    START = "start"
    MECHANISM_SELECTED = "mechanism_selected"
    PLAIN_EXCHANGE = "plain_exchange"
    CHALLENGE_EXCHANGE = "challenge_exchange"
    TOKEN_COMBINED = "token_combined"
    TOKEN_SPLIT = "token_split"
    SUCCESS = "success"
    FAILURE = "failure"


# TOKEN_COMBINED -> TOKEN_SPLIT is the only edge taken on failure.
_TRANSITIONS: dict[AuthState, frozenset[AuthState]] = {
    AuthState.START: frozenset(
        {AuthState.MECHANISM_SELECTED, AuthState.FAILURE}
    ),
    AuthState.MECHANISM_SELECTED: frozenset(
        {
            AuthState.PLAIN_EXCHANGE,
            AuthState.CHALLENGE_EXCHANGE,
            AuthState.TOKEN_COMBINED,
            AuthState.TOKEN_SPLIT,
            AuthState.FAILURE,
        }
    ),
    AuthState.PLAIN_EXCHANGE: frozenset({AuthState.SUCCESS, AuthState.FAILURE}),
    AuthState.CHALLENGE_EXCHANGE: frozenset(
        {AuthState.SUCCESS, AuthState.FAILURE}
    ),
    AuthState.TOKEN_COMBINED: frozenset(
        {AuthState.SUCCESS, AuthState.TOKEN_SPLIT, AuthState.FAILURE}
    ),
    AuthState.TOKEN_SPLIT: frozenset({AuthState.SUCCESS, AuthState.FAILURE}),
    AuthState.SUCCESS: frozenset(),
    AuthState.FAILURE: frozenset(),
}


@dataclass(frozen=True)
class PlainCredentials:
    """Inputs for USER/PASS."""

    username: str
    password: str


@dataclass(frozen=True)
class ChallengeCredentials:
    """Inputs for APOP.

    Attributes:
        username: Mailbox user name.
        secret: Shared secret, digested together with the challenge.
        challenge: Bracketed challenge from the greeting.
    """

    username: str
    secret: str
    challenge: str


@dataclass(frozen=True)
class TokenCredentials:
    """Inputs for XOAUTH2."""

    username: str
    token: str


@dataclass(frozen=True)
class AuthAttempt:
    """One wire exchange made while authenticating.

    Attributes:
        mechanism: Mechanism used for the exchange.
        variant: Token format, None for APOP and USER/PASS.
        ok: Whether the server accepted the exchange.
        detail: Server reply text, for diagnostics.
    """

    mechanism: Mechanism
    variant: FormatVariant | None
    ok: bool
    detail: str = ""


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful authentication.

    Attributes:
        mechanism: Mechanism that completed the exchange.
        state: Terminal state (always ``SUCCESS`` when returned).
        attempts: Every exchange made, in order.
    """

    mechanism: Mechanism
    state: AuthState
    attempts: tuple[AuthAttempt, ...]

    @property
    def fallback_used(self) -> bool:
        """True if the split format ran after a rejected combined attempt."""
        variants = [a.variant for a in self.attempts]
        return (
            FormatVariant.COMBINED in variants
            and FormatVariant.SPLIT in variants
        )


def apop_digest(challenge: str, secret: str) -> str:
    """Return the RFC 1939 APOP digest: hex MD5 of challenge + secret."""
    data = (challenge + secret).encode("utf-8")
    return hashlib.md5(data, usedforsecurity=False).hexdigest()


def xoauth2_credential(username: str, token: str) -> str:
    r"""Build the base64-encoded SASL XOAUTH2 initial response.

    Format before encoding: ``user={user}\x01auth=Bearer {token}\x01\x01``
    """
    raw = f"user={username}\x01auth=Bearer {token}\x01\x01"
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


class Authenticator:
    """Selects and drives one authentication mechanism to completion.

    An instance serves a single connect attempt; create a new one to retry.

    Attributes:
        config: Session configuration.
        state: Current state of the exchange.
        mechanism: Selected mechanism (None until selected).
        attempts: Exchanges made so far.
    """

    def __init__(
        self,
        config: Pop3Config,
        *,
        digest: Callable[[str, str], str] = apop_digest,
        token_provider: TokenProvider | None = None,
    ) -> None:
        self.config = config
        self.state = AuthState.START
        self.mechanism: Mechanism | None = None
        self.attempts: list[AuthAttempt] = []
        self._digest = digest
        self._token_provider = token_provider

    def select(
        self,
        capabilities: frozenset[str],
        challenge: str | None,
        *,
        capa_skipped: bool = False,
    ) -> Mechanism:
        """Choose the mechanism for this connection.

        Args:
            capabilities: Names advertised by ``CAPA`` (may be empty).
            challenge: APOP challenge from the greeting, if any.
            capa_skipped: True if ``CAPA`` was disabled by configuration.

        Returns:
            The selected mechanism.
        """
        if self.config.token_auth_enabled:
            for name in self.config.auth_mechanisms:
                if capa_skipped or name in capabilities:
                    return Mechanism(name)
            logger.debug(
                "Token auth enabled but server advertises none of: %s",
                ", ".join(self.config.auth_mechanisms),
            )
        if self.config.apop_enabled:
            if challenge is not None:
                return Mechanism.APOP
            logger.debug("APOP enabled but greeting has no challenge")
        return Mechanism.USER

    def authenticate(
        self,
        transport: LineTransport,
        username: str,
        password: str,
        *,
        capabilities: frozenset[str] = frozenset(),
        challenge: str | None = None,
        capa_skipped: bool = False,
    ) -> AuthResult:
        """Select a mechanism and run its exchange.

        Args:
            transport: Connected transport in the AUTHORIZATION state.
            username: Mailbox user name.
            password: Password, APOP secret, or bearer token.
            capabilities: Names advertised by ``CAPA``.
            challenge: APOP challenge from the greeting, if any.
            capa_skipped: True if ``CAPA`` was disabled by configuration.

        Returns:
            The successful result.

        Raises:
            AuthenticationError: If the server rejects the credentials.
            TransportError: If the transport fails mid-exchange.
            RuntimeError: If this authenticator was already used.
        """
        if self.state is not AuthState.START:
            raise RuntimeError(f"Authenticator already used ({self.state})")

        SecretFilter.register_secret(password)
        mechanism = self.select(
            capabilities, challenge, capa_skipped=capa_skipped
        )
        self.mechanism = mechanism
        self._advance(AuthState.MECHANISM_SELECTED)
        logger.debug("Selected %s authentication", mechanism.value)

        try:
            if mechanism is Mechanism.XOAUTH2:
                self._run_token(transport, username, password)
            elif mechanism is Mechanism.APOP:
                self._run_challenge(transport, username, password, challenge)
            else:
                self._run_plain(
                    transport, PlainCredentials(username, password)
                )
        except TransportError:
            self._fail()
            raise

        return AuthResult(
            mechanism=self.mechanism,
            state=self.state,
            attempts=tuple(self.attempts),
        )

    # -- USER/PASS --------------------------------------------------------

    def _run_plain(
        self, transport: LineTransport, credentials: PlainCredentials
    ) -> None:
        self._advance(AuthState.PLAIN_EXCHANGE)

        transport.send_line(f"USER {credentials.username}")
        response = parse_response(transport.read_line())
        if not response.ok:
            self._reject(Mechanism.USER, None, "USER", response.text)

        transport.send_line(f"PASS {credentials.password}")
        response = parse_response(transport.read_line())
        self.attempts.append(
            AuthAttempt(Mechanism.USER, None, response.ok, response.text)
        )
        if not response.ok:
            self._fail()
            raise AuthenticationError(
                f"USER/PASS rejected: {response.text or '-ERR'}",
                tuple(self.attempts),
            )
        self._advance(AuthState.SUCCESS)

    # -- APOP -------------------------------------------------------------

    def _run_challenge(
        self,
        transport: LineTransport,
        username: str,
        secret: str,
        challenge: str | None,
    ) -> None:
        if challenge is None:
            # No challenge to digest: USER/PASS is the only option.
            logger.debug("No APOP challenge, using USER/PASS")
            self.mechanism = Mechanism.USER
            self._run_plain(transport, PlainCredentials(username, secret))
            return

        credentials = ChallengeCredentials(username, secret, challenge)
        self._advance(AuthState.CHALLENGE_EXCHANGE)
        digest = self._digest(credentials.challenge, credentials.secret)
        transport.send_line(f"APOP {credentials.username} {digest}")
        response = parse_response(transport.read_line())
        self.attempts.append(
            AuthAttempt(Mechanism.APOP, None, response.ok, response.text)
        )
        if not response.ok:
            self._fail()
            raise AuthenticationError(
                f"APOP rejected: {response.text or '-ERR'}",
                tuple(self.attempts),
            )
        self._advance(AuthState.SUCCESS)

    # -- XOAUTH2 ----------------------------------------------------------

    def _run_token(
        self, transport: LineTransport, username: str, password: str
    ) -> None:
        """Obtain the bearer token and run the XOAUTH2 exchange.

        The password doubles as the bearer token unless a token provider
        is configured.
        """
        token = password
        if self._token_provider is not None:
            try:
                token = self._token_provider.get_access_token()
            except Exception as e:
                self._fail()
                raise AuthenticationError(
                    f"Cannot obtain XOAUTH2 token: {e}"
                ) from e

        credentials = TokenCredentials(username, token)
        credential = xoauth2_credential(
            credentials.username, credentials.token
        )
        SecretFilter.register_secret(credentials.token)
        SecretFilter.register_secret(credential)

        if self.config.xoauth2_split_format:
            self._advance(AuthState.TOKEN_SPLIT)
            self._run_token_split(transport, credential)
            return

        self._advance(AuthState.TOKEN_COMBINED)
        if self._run_token_combined(transport, credential):
            self._advance(AuthState.SUCCESS)
            return

        logger.info("AUTH XOAUTH2 single-line format rejected, retrying")
        self._advance(AuthState.TOKEN_SPLIT)
        self._run_token_split(transport, credential)

    def _run_token_combined(
        self, transport: LineTransport, credential: str
    ) -> bool:
        transport.send_line(f"AUTH XOAUTH2 {credential}")
        line = self._finish_sasl(transport, transport.read_line())
        response = parse_response(line)
        self.attempts.append(
            AuthAttempt(
                Mechanism.XOAUTH2,
                FormatVariant.COMBINED,
                response.ok,
                response.text,
            )
        )
        return response.ok

    def _run_token_split(
        self, transport: LineTransport, credential: str
    ) -> None:
        transport.send_line("AUTH XOAUTH2")
        line = transport.read_line()
        response = parse_response(line)
        if response.ok:
            # Accepted without asking for the credential.
            self._finish_token_split(response)
            return
        if not is_continuation(line):
            self._reject(
                Mechanism.XOAUTH2,
                FormatVariant.SPLIT,
                "AUTH XOAUTH2",
                response.text,
            )

        transport.send_line(credential)
        line = self._finish_sasl(transport, transport.read_line())
        self._finish_token_split(parse_response(line))

    def _finish_token_split(self, response: Response) -> None:
        self.attempts.append(
            AuthAttempt(
                Mechanism.XOAUTH2,
                FormatVariant.SPLIT,
                response.ok,
                response.text,
            )
        )
        if not response.ok:
            self._fail()
            raise AuthenticationError(
                f"AUTH XOAUTH2 rejected: {response.text or '-ERR'}",
                tuple(self.attempts),
            )
        self._advance(AuthState.SUCCESS)

    @staticmethod
    def _finish_sasl(transport: LineTransport, line: str) -> str:
        """Answer an error challenge so the server sends its final reply.

        On failure XOAUTH2 servers may send a continuation carrying a
        base64 JSON error; the client answers with an empty line.
        """
        if is_continuation(line):
            logger.debug("XOAUTH2 error challenge: %s", line[1:].strip())
            transport.send_line("")
            return transport.read_line()
        return line

    # -- state bookkeeping ------------------------------------------------

    def _reject(
        self,
        mechanism: Mechanism,
        variant: FormatVariant | None,
        command: str,
        detail: str,
    ) -> None:
        self.attempts.append(AuthAttempt(mechanism, variant, False, detail))
        self._fail()
        raise AuthenticationError(
            f"{command} rejected: {detail or '-ERR'}", tuple(self.attempts)
        )

    def _fail(self) -> None:
        if self.state not in (AuthState.SUCCESS, AuthState.FAILURE):
            self._advance(AuthState.FAILURE)

    def _advance(self, state: AuthState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal auth transition {self.state.name} -> {state.name}"
            )
        logger.debug("Auth state %s -> %s", self.state.name, state.name)
        self.state = state
