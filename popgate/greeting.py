# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Server greeting parsing.

An APOP-capable server embeds a one-time challenge in its greeting, shaped
like an RFC 822 msg-id::

    +OK POP3 server ready <1896.697170952@dbc.mtview.ca.us>

The challenge, brackets included, is the input to the APOP digest.
"""

import re

from popgate.response import parse_response


_CHALLENGE_RE = re.compile(r"<[^<>\s]*@[^<>\s]*>")


def parse_greeting(line: str) -> str | None:
    """Extract the APOP challenge from a greeting line.

    Never raises: a greeting without a well-formed challenge simply means
    APOP is unavailable for this session.

    Args:
        line: The first line sent by the server.

    Returns:
        The bracketed challenge, or None.
    """
    match = _CHALLENGE_RE.search(line)
    if match is None:
        return None
    return match.group(0)


def greeting_accepted(line: str) -> bool:
    """Return True if the greeting is a positive acknowledgment."""
    return parse_response(line).ok
