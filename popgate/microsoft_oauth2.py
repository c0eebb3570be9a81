# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Bearer token sources for the XOAUTH2 mechanism.

Microsoft 365 mailboxes accept POP3 ``AUTH XOAUTH2`` with a token obtained
through the MSAL Client Credentials flow for an Entra ID service principal.
Any object with a ``get_access_token()`` method can stand in for the
provider, which is how callers plug in other identity providers.
"""

import logging
from typing import Protocol

from msal import ConfidentialClientApplication


logger = logging.getLogger(__name__)

#: Default OAuth2 scope for M365 POP/IMAP/SMTP via client credentials.
DEFAULT_SCOPES = ("https://outlook.office365.com/.default",)


class MicrosoftOAuth2TokenError(Exception):
    """Raised when Microsoft OAuth2 token acquisition fails."""


class TokenProvider(Protocol):
    """Source of OAuth2 bearer tokens."""

    def get_access_token(self) -> str: ...


class MicrosoftOAuth2TokenProvider:
    """Acquires OAuth2 tokens via MSAL Client Credentials flow.

    MSAL caches tokens internally, so calling :meth:`get_access_token` once
    per connect attempt only reaches Entra ID when the cached token expired.

    Attributes:
        tenant_id: Entra ID tenant ID.
        client_id: Application (client) ID of the app registration.
        scopes: Scopes requested for the token.
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        scopes: tuple[str, ...] = DEFAULT_SCOPES,
    ) -> None:
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.scopes = scopes
        self._app = ConfidentialClientApplication(
            client_id,
            authority=f"https://login.microsoftonline.com/{tenant_id}",
            client_credential=client_secret,
        )
        logger.debug(
            "Initialized Microsoft OAuth2 token provider: tenant=%s, client=%s",
            tenant_id,
            client_id,
        )

    def get_access_token(self) -> str:
        """Return a valid access token (from cache or freshly acquired).

        Raises:
            MicrosoftOAuth2TokenError: If token acquisition fails.
        """
        result = self._app.acquire_token_for_client(scopes=list(self.scopes))

        if "access_token" in result:
            logger.debug("Acquired Microsoft OAuth2 access token")
            return result["access_token"]

        error = result.get("error", "unknown_error")
        description = result.get("error_description", "No description")
        raise MicrosoftOAuth2TokenError(
            f"Failed to acquire token: {error}: {description}"
        )
