# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""POP3 status line parsing.

Every single-line server reply is either a positive (``+OK``) or negative
(``-ERR``) acknowledgment, optionally followed by an RFC 2449 extended
response code in square brackets (``-ERR [AUTH] bad password``).  SASL
exchanges additionally use ``+`` continuation lines.
"""

import re
from dataclasses import dataclass


_STATUS_RE = re.compile(r"^(?P<status>\+OK|-ERR)\b\s?(?P<text>.*)$", re.I)
_CODE_RE = re.compile(r"^\[(?P<code>[^\]\s]+)\]\s*")


@dataclass(frozen=True)
class Response:
    """A parsed status line.

    Attributes:
        ok: True for ``+OK``, False for ``-ERR`` or anything unrecognized.
        text: Free text after the status keyword (code stripped).
        code: Extended response code (e.g. ``AUTH``, ``IN-USE``), if any.
    """

    ok: bool
    text: str
    code: str | None = None


def parse_response(line: str) -> Response:
    """Parse a single-line server reply.

    Unrecognized lines are negative, keeping the raw text for diagnostics.

    Args:
        line: Reply line without the trailing CRLF.

    Returns:
        Parsed response.
    """
    match = _STATUS_RE.match(line.strip())
    if match is None:
        return Response(ok=False, text=line.strip())

    ok = match.group("status").upper() == "+OK"
    text = match.group("text")
    code = None
    code_match = _CODE_RE.match(text)
    if code_match:
        code = code_match.group("code").upper()
        text = text[code_match.end() :]
    return Response(ok=ok, text=text.strip(), code=code)


def is_continuation(line: str) -> bool:
    """Return True if the line is a SASL continuation (``+`` or ``+ ...``).

    ``+OK`` is a final positive acknowledgment, not a continuation.
    """
    return line.startswith("+") and _STATUS_RE.match(line.strip()) is None


def is_positive(line: str) -> bool:
    """Return True for any ``+``-prefixed status line.

    Lenient form of :func:`parse_response` for multi-line openers: some
    servers answer ``CAPA`` with ``+ OK`` instead of ``+OK``.
    """
    return line.strip().startswith("+")
