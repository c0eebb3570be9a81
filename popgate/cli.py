# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""popgate CLI: multi-command entry point.

Subcommands:

* ``init``  -- create a stub config file
* ``check`` -- connect with the configured account and report what the
  server negotiated (challenge, capabilities, mechanism, NOOP probe)
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from popgate.config import ConfigError, Pop3Config, get_config_path
from popgate.errors import AuthenticationError, Pop3Error
from popgate.logging import configure_logging
from popgate.session import Session


logger = logging.getLogger(__name__)

_USAGE = """\
usage: popgate <command> [args]

commands:
  init   Create a stub config file
  check  Connect, authenticate and probe the configured server

Run 'popgate <command> --help' for command-specific help.\
"""

#: Subcommand name to handler function name.
_DISPATCH = {
    "init": "cmd_init",
    "check": "cmd_check",
}


# ── Terminal colors ─────────────────────────────────────────────────


def _use_color() -> bool:
    """Determine whether to use ANSI color codes in output.

    Returns True when stdout is a TTY and the ``NO_COLOR`` environment
    variable is not set.  ``TERM=dumb`` also disables color.
    """
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    return sys.stdout.isatty()


class _Style:
    """ANSI escape helpers.  All methods return plain text when color is off."""

    def __init__(self, color: bool) -> None:
        self._on = color

    def _wrap(self, code: str, text: str) -> str:
        if not self._on:
            return text
        return f"\033[{code}m{text}\033[0m"

    def bold(self, text: str) -> str:
        return self._wrap("1", text)

    def green(self, text: str) -> str:
        return self._wrap("32", text)

    def red(self, text: str) -> str:
        return self._wrap("31", text)

    def yellow(self, text: str) -> str:
        return self._wrap("33", text)

    def dim(self, text: str) -> str:
        return self._wrap("2", text)


# ── init subcommand ─────────────────────────────────────────────────


def cmd_init(argv: list[str]) -> int:
    """Create a stub configuration file.

    Args:
        argv: ``[--config PATH]``.

    Returns:
        Exit code (always 0).
    """
    parser = argparse.ArgumentParser(prog="popgate init")
    parser.add_argument("--config", type=Path, default=None)
    args = parser.parse_args(argv)

    config_path: Path = args.config or get_config_path()
    if config_path.exists():
        print(f"Config already exists: {config_path}")
        return 0

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STUB_CONFIG)
    print(f"Created stub config: {config_path}")
    return 0


# ── check subcommand ────────────────────────────────────────────────


def cmd_check(argv: list[str]) -> int:
    """Connect to the configured server and print the negotiation.

    Args:
        argv: ``[--config PATH] [--verbose]``.

    Returns:
        0 if the session authenticated and answered NOOP, 1 otherwise.
    """
    parser = argparse.ArgumentParser(prog="popgate check")
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="log the POP3 dialogue"
    )
    args = parser.parse_args(argv)
    configure_logging(level=logging.DEBUG if args.verbose else logging.WARNING)

    s = _Style(_use_color())
    config_path: Path = args.config or get_config_path()
    print(s.bold("Configuration"))
    print(f"  Config file: {s.dim(str(config_path))}")
    try:
        config = Pop3Config.from_yaml(config_path)
    except ConfigError as e:
        print(f"  Status:      {s.red('error')}: {e}")
        return 1
    print(f"  Server:      {config.host}:{config.port}")
    print()

    print(s.bold("Session"))
    with Session(config) as session:
        try:
            result = session.connect()
        except AuthenticationError as e:
            print(f"  {s.red('✗')} authentication failed: {e}")
            return 1
        except Pop3Error as e:
            print(f"  {s.red('✗')} connection failed: {e}")
            return 1

        challenge = "present" if session.challenge else "absent"
        capabilities = " ".join(sorted(session.capabilities)) or "(none)"
        print(f"  APOP challenge: {challenge}")
        print(f"  Capabilities:   {capabilities}")
        mechanism = result.mechanism.value
        if result.fallback_used:
            mechanism += s.yellow(" (split-format fallback)")
        print(f"  Mechanism:      {mechanism}")

        alive = session.probe()
        probe = s.green("ok") if alive else s.red("no response")
        print(f"  NOOP probe:     {probe}")
    print()

    if alive:
        print(s.green("All checks passed."))
        return 0
    print(s.red("Some checks failed."))
    return 1


def cli() -> None:
    """Entry point for ``popgate``."""
    argv = sys.argv[1:]

    if not argv or argv[0] in ("-h", "--help"):
        print(_USAGE)
        sys.exit(0)

    if argv[0] not in _DISPATCH:
        print(f"popgate: unknown command '{argv[0]}'", file=sys.stderr)
        print(_USAGE, file=sys.stderr)
        sys.exit(2)

    # Look up handler by name so tests can mock individual commands.
    import popgate.cli as _self

    handler = getattr(_self, _DISPATCH[argv[0]])
    sys.exit(handler(argv[1:]))


#: Stub configuration template written by ``popgate init``.
_STUB_CONFIG = """\
# popgate configuration

server:
  host: pop.example.com
  port: 110
  # connect_timeout: 10
  # timeout: 30
  # disable_capa: false

account:
  username: you@example.com
  password: !env POP3_PASSWORD

auth:
  apop: false
  token:
    enabled: false
    mechanisms: [XOAUTH2]
    # split_format: false
  # microsoft_oauth2:
  #   tenant_id: !env AZURE_TENANT_ID
  #   client_id: !env AZURE_CLIENT_ID
  #   client_secret: !env AZURE_CLIENT_SECRET

# folder:
#   probe_before_open: true
"""
