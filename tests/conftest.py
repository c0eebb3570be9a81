# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures."""

from collections.abc import Callable

import pytest

from popgate.config import Pop3Config
from popgate.logging import SecretFilter
from popgate.session import Session
from tests.pop3_server import ScriptedServer


@pytest.fixture(autouse=True)
def _clear_secrets():
    """Keep the class-level secret registry from leaking across tests."""
    SecretFilter.clear_secrets()
    yield
    SecretFilter.clear_secrets()


@pytest.fixture
def server() -> ScriptedServer:
    """Healthy POP3 server with an APOP challenge and XOAUTH2 in CAPA."""
    return ScriptedServer()


@pytest.fixture
def config() -> Pop3Config:
    """Plain USER/PASS configuration matching the scripted server."""
    return Pop3Config(host="pop.example.com", username="test", password="test")


@pytest.fixture
def make_session() -> Callable[..., Session]:
    """Build a session wired to a scripted server."""

    def _make(config: Pop3Config, server: ScriptedServer, **kwargs) -> Session:
        return Session(config, transport_factory=server.factory, **kwargs)

    return _make
