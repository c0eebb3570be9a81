# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""End-to-end tests over a real TCP socket."""

import dataclasses
import logging

import pytest

from popgate.config import Pop3Config
from popgate.errors import AuthenticationError
from popgate.logging import SecretFilter
from popgate.session import Session, SessionState
from tests.pop3_server import ScriptedServer, ThreadedPop3Server


@pytest.fixture
def tcp_server():
    """Start a scripted POP3 server on localhost, stop it afterwards."""
    servers: list[ThreadedPop3Server] = []

    def _start(script: ScriptedServer) -> ThreadedPop3Server:
        server = ThreadedPop3Server(script)
        server.start()
        servers.append(server)
        return server

    yield _start
    for server in servers:
        server.stop()


def _config(port: int, **changes) -> Pop3Config:
    config = Pop3Config(
        host="127.0.0.1",
        port=port,
        username="test",
        password="test",
        timeout_seconds=5,
    )
    return dataclasses.replace(config, **changes)


def test_plain_login_and_open(tcp_server):
    """Test USER/PASS, NOOP-gated open and QUIT over TCP."""
    script = ScriptedServer()
    server = tcp_server(script)

    with Session(_config(server.port)) as session:
        session.connect()
        folder = session.folder()
        folder.open()
        assert folder.is_open

    assert script.commands() == ["CAPA", "USER", "PASS", "NOOP", "QUIT"]


def test_xoauth2_fallback(tcp_server):
    """Test the split-format fallback over TCP."""
    script = ScriptedServer(greeting="+OK")
    script.script("AUTH", "-ERR Connection dropped")
    server = tcp_server(script)

    with Session(_config(server.port, token_auth_enabled=True)) as session:
        result = session.connect()

    assert result.fallback_used
    assert script.commands().count("AUTH") == 2


def test_noop_rejected(tcp_server):
    """Test a folder stays closed when NOOP fails over TCP."""
    script = ScriptedServer()
    script.script("NOOP", "-ERR")
    server = tcp_server(script)

    with Session(_config(server.port)) as session:
        session.connect()
        folder = session.folder()
        folder.open()
        assert not folder.is_open


def test_bad_password(tcp_server):
    """Test rejected credentials over TCP."""
    server = tcp_server(ScriptedServer(password="right"))
    session = Session(_config(server.port))

    with pytest.raises(AuthenticationError):
        session.connect()

    assert session.state is SessionState.FAILED


def test_wire_log_redacts_password(tcp_server, caplog):
    """Test the DEBUG wire log shows PASS without the password."""
    server = tcp_server(ScriptedServer(password="s3cret-pw"))
    caplog.handler.addFilter(SecretFilter())

    with caplog.at_level(logging.DEBUG, logger="popgate"):
        with Session(_config(server.port, password="s3cret-pw")) as session:
            session.connect()

    assert "C: PASS [REDACTED]" in caplog.text
    assert "s3cret-pw" not in caplog.text
