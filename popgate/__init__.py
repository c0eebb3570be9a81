# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""POP3 connection and authentication negotiation engine.

Public API::

    from popgate import Pop3Config, Session

    config = Pop3Config(host="pop.example.com", username="u", password="p")
    with Session(config) as session:
        session.connect()
        inbox = session.folder()
        inbox.open()
"""

from popgate.auth import (
    AuthAttempt,
    Authenticator,
    AuthResult,
    AuthState,
    FormatVariant,
    Mechanism,
    apop_digest,
    xoauth2_credential,
)
from popgate.capabilities import parse_capabilities, query_capabilities
from popgate.config import ConfigError, MicrosoftOAuth2Config, Pop3Config
from popgate.errors import (
    AuthenticationError,
    ConnectError,
    FolderError,
    FolderNotFoundError,
    Pop3Error,
    TransportError,
    TransportTimeoutError,
)
from popgate.folder import Folder, FolderMode
from popgate.greeting import parse_greeting
from popgate.session import Session, SessionState
from popgate.transport import (
    LineTransport,
    SocketLineTransport,
    open_socket_transport,
)


__all__ = [
    "AuthAttempt",
    "AuthResult",
    "AuthState",
    "AuthenticationError",
    "Authenticator",
    "ConfigError",
    "ConnectError",
    "Folder",
    "FolderError",
    "FolderMode",
    "FolderNotFoundError",
    "FormatVariant",
    "LineTransport",
    "Mechanism",
    "MicrosoftOAuth2Config",
    "Pop3Config",
    "Pop3Error",
    "Session",
    "SessionState",
    "SocketLineTransport",
    "TransportError",
    "TransportTimeoutError",
    "apop_digest",
    "open_socket_transport",
    "parse_capabilities",
    "parse_greeting",
    "query_capabilities",
    "xoauth2_credential",
]
