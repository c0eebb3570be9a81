# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for greeting parsing."""

import pytest

from popgate.greeting import greeting_accepted, parse_greeting


def test_challenge_extracted():
    """Test the RFC 1939 example greeting."""
    line = "+OK POP3 server ready <1896.697170952@dbc.mtview.ca.us>"

    assert parse_greeting(line) == "<1896.697170952@dbc.mtview.ca.us>"


def test_challenge_mid_text():
    """Test a challenge followed by more text."""
    line = "+OK <4711.1@host> Dovecot ready."

    assert parse_greeting(line) == "<4711.1@host>"


@pytest.mark.parametrize(
    "line",
    [
        "+OK",
        "+OK POP3 server ready",
        "+OK <>",
        "+OK <no-at-sign>",
        "+OK <has space@host>",
        "+OK <unterminated@host",
        "",
    ],
)
def test_no_challenge(line):
    """Test greetings without a well-formed challenge yield None."""
    assert parse_greeting(line) is None


def test_greeting_accepted():
    """Test +OK greetings are accepted and -ERR refused."""
    assert greeting_accepted("+OK")
    assert greeting_accepted("+ok ready")
    assert not greeting_accepted("-ERR go away")
    assert not greeting_accepted("garbage")
