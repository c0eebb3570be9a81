# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the Microsoft OAuth2 token provider."""

from unittest.mock import MagicMock, patch

import pytest

from popgate.microsoft_oauth2 import (
    MicrosoftOAuth2TokenError,
    MicrosoftOAuth2TokenProvider,
)


@patch("popgate.microsoft_oauth2.ConfidentialClientApplication")
def test_init_creates_msal_app(mock_msal_cls):
    """Test provider initializes MSAL ConfidentialClientApplication."""
    provider = MicrosoftOAuth2TokenProvider(
        tenant_id="test-tenant",
        client_id="test-client",
        client_secret="test-secret",
    )

    mock_msal_cls.assert_called_once_with(
        "test-client",
        authority="https://login.microsoftonline.com/test-tenant",
        client_credential="test-secret",
    )
    assert provider.tenant_id == "test-tenant"
    assert provider.client_id == "test-client"


@patch("popgate.microsoft_oauth2.ConfidentialClientApplication")
def test_get_access_token_success(mock_msal_cls):
    """Test successful token acquisition."""
    mock_app = MagicMock()
    mock_msal_cls.return_value = mock_app
    mock_app.acquire_token_for_client.return_value = {
        "access_token": "eyJ0eXAi...",
    }

    provider = MicrosoftOAuth2TokenProvider(
        tenant_id="t", client_id="c", client_secret="s"
    )

    assert provider.get_access_token() == "eyJ0eXAi..."
    mock_app.acquire_token_for_client.assert_called_once_with(
        scopes=["https://outlook.office365.com/.default"]
    )


@patch("popgate.microsoft_oauth2.ConfidentialClientApplication")
def test_custom_scopes(mock_msal_cls):
    """Test scopes passed to the provider reach MSAL."""
    mock_app = mock_msal_cls.return_value
    mock_app.acquire_token_for_client.return_value = {"access_token": "x"}

    provider = MicrosoftOAuth2TokenProvider(
        tenant_id="t",
        client_id="c",
        client_secret="s",
        scopes=("api://custom/.default",),
    )
    provider.get_access_token()

    mock_app.acquire_token_for_client.assert_called_once_with(
        scopes=["api://custom/.default"]
    )


@patch("popgate.microsoft_oauth2.ConfidentialClientApplication")
def test_get_access_token_failure(mock_msal_cls):
    """Test token acquisition failure raises MicrosoftOAuth2TokenError."""
    mock_app = mock_msal_cls.return_value
    mock_app.acquire_token_for_client.return_value = {
        "error": "invalid_client",
        "error_description": "Bad client secret",
    }

    provider = MicrosoftOAuth2TokenProvider(
        tenant_id="t", client_id="c", client_secret="s"
    )

    with pytest.raises(
        MicrosoftOAuth2TokenError,
        match="Failed to acquire token: invalid_client: Bad client secret",
    ):
        provider.get_access_token()


@patch("popgate.microsoft_oauth2.ConfidentialClientApplication")
def test_get_access_token_failure_no_details(mock_msal_cls):
    """Test token failure with an empty MSAL result."""
    mock_msal_cls.return_value.acquire_token_for_client.return_value = {}

    provider = MicrosoftOAuth2TokenProvider(
        tenant_id="t", client_id="c", client_secret="s"
    )

    with pytest.raises(
        MicrosoftOAuth2TokenError,
        match="unknown_error: No description",
    ):
        provider.get_access_token()
