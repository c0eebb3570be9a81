# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Capability discovery via the RFC 2449 ``CAPA`` command.

Capability discovery is advisory.  A server that rejects ``CAPA`` is
treated as advertising nothing, and the connect pipeline carries on with
the default mechanism.
"""

import logging

from popgate.response import is_positive, parse_response
from popgate.transport import LineTransport


logger = logging.getLogger(__name__)


def parse_capabilities(lines: list[str]) -> frozenset[str]:
    """Turn a ``CAPA`` block into a set of uppercase names.

    Each line contributes its keyword.  A ``SASL`` line also contributes
    every mechanism it lists::

        TOP
        SASL PLAIN XOAUTH2      -> {"TOP", "SASL", "PLAIN", "XOAUTH2"}

    Args:
        lines: Body of the multi-line reply, terminator removed.

    Returns:
        Capability names.
    """
    names: set[str] = set()
    for line in lines:
        tokens = line.split()
        if not tokens:
            continue
        keyword = tokens[0].upper()
        names.add(keyword)
        if keyword == "SASL":
            names.update(token.upper() for token in tokens[1:])
    return frozenset(names)


def query_capabilities(transport: LineTransport) -> frozenset[str]:
    """Send ``CAPA`` and parse the advertised capabilities.

    Args:
        transport: Connected transport with the greeting already consumed.

    Returns:
        Capability names, empty if the server declined the query.

    Raises:
        TransportError: If the transport fails.
    """
    transport.send_line("CAPA")
    line = transport.read_line()
    if not is_positive(line):
        logger.debug(
            "CAPA not supported: %s", parse_response(line).text or "-ERR"
        )
        return frozenset()

    capabilities = parse_capabilities(transport.read_multiline())
    logger.debug("Server capabilities: %s", " ".join(sorted(capabilities)))
    return capabilities
