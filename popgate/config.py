# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Configuration for a POP3 session.

Configuration is loaded from a YAML file (by default
``$XDG_CONFIG_HOME/popgate/popgate.yaml``) with support for ``!env`` tags
that resolve values from environment variables, so credentials can stay
out of the file::

    server:
      host: pop.example.com
      port: 110
      timeout: 30
    account:
      username: alice@example.com
      password: !env POP3_PASSWORD
    auth:
      apop: true
      token:
        enabled: false
        mechanisms: [XOAUTH2]

A ``.env`` file in the config directory is loaded before resolution.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar, overload

import yaml
from platformdirs import user_config_path

from popgate.auth import Mechanism
from popgate.dotenv_loader import load_dotenv_once
from popgate.logging import SecretFilter


logger = logging.getLogger(__name__)

#: Application name for XDG path resolution.
_APP_NAME = "popgate"

_BOOL_TRUTHY = frozenset({"true", "1", "yes", "on"})
_BOOL_FALSY = frozenset({"false", "0", "no", "off"})

#: Mechanism names accepted in ``auth.token.mechanisms``.
TOKEN_MECHANISMS = frozenset({Mechanism.XOAUTH2.value})


def get_config_path() -> Path:
    """Return the default config file path.

    Uses XDG: ``$XDG_CONFIG_HOME/popgate/popgate.yaml`` (typically
    ``~/.config/popgate/popgate.yaml``).
    """
    return user_config_path(_APP_NAME) / "popgate.yaml"


def get_dotenv_path() -> Path:
    """Return the default ``.env`` path inside the XDG config directory."""
    return user_config_path(_APP_NAME) / ".env"


class ConfigError(Exception):
    """Raised when the config file is missing or malformed."""


# ---------------------------------------------------------------------------
# YAML tag placeholders
# ---------------------------------------------------------------------------


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)
    return _EnvVar(str(value))


def _make_loader() -> type[yaml.SafeLoader]:
    """Create a YAML loader that understands ``!env``."""

    class EnvLoader(yaml.SafeLoader):
        pass

    EnvLoader.add_constructor("!env", _env_constructor)
    return EnvLoader


# ---------------------------------------------------------------------------
# Value resolution
# ---------------------------------------------------------------------------


def _coerce_bool(value: object) -> bool:
    """Coerce a value to bool, handling string representations."""
    if isinstance(value, bool):
        return value
    s = str(value).lower().strip()
    if s in _BOOL_TRUTHY:
        return True
    if s in _BOOL_FALSY:
        return False
    raise ConfigError(f"Cannot convert {value!r} to bool")


def _raw_resolve(value: object) -> str | None:
    """Resolve an ``_EnvVar`` to its string value, or stringify literals.

    Returns None if the value is None or the env var is unset/empty.
    """
    if isinstance(value, _EnvVar):
        return os.environ.get(value.var_name) or None
    if value is None:
        return None
    return str(value)


_MISSING = object()

T = TypeVar("T")


@overload
def _resolve(value: object, coerce: type[T], *, default: T) -> T: ...


@overload
def _resolve(
    value: object,
    coerce: type[T],
    *,
    required: str,
) -> T: ...


@overload
def _resolve(value: object, coerce: type[T]) -> T | None: ...


def _resolve(
    value: object,
    coerce: type[Any],
    *,
    default: object = _MISSING,
    required: str = "",
) -> Any:
    """Resolve a YAML value, handling ``!env`` tags and type coercion.

    Args:
        value: Raw value from YAML (may be ``_EnvVar``, None, or a
            literal already parsed by PyYAML).
        coerce: Target type (``str``, ``int``, ``float``, ``bool``).
        default: Default when value is absent.  Not allowed together
            with *required*.
        required: Human-readable field name.  When set, raises
            ``ConfigError`` if the value is absent.

    Returns:
        The resolved, coerced value, or None when optional and absent.
    """
    if not isinstance(value, _EnvVar) and value is not None:
        if coerce is bool:
            return _coerce_bool(value)
        if isinstance(value, coerce) and not isinstance(value, bool):
            return value

    resolved = _raw_resolve(value)

    if resolved is None:
        if required:
            if isinstance(value, _EnvVar):
                raise ConfigError(
                    f"Required config '{required}': environment variable "
                    f"'{value.var_name}' is not set"
                )
            raise ConfigError(f"Required config '{required}' is missing")
        if default is not _MISSING:
            return default
        return None

    if coerce is bool:
        return _coerce_bool(resolved)
    try:
        return coerce(resolved)
    except ValueError as e:
        raise ConfigError(
            f"Cannot convert {resolved!r} to {coerce.__name__}"
        ) from e


def _resolve_string_list(value: object, *, field_name: str) -> list[str]:
    """Resolve a list of strings, handling ``!env`` for each element.

    Args:
        value: Raw value from YAML (should be a list, may contain ``_EnvVar``).
        field_name: Human-readable field name for error messages.

    Returns:
        List of resolved strings (non-empty values only).

    Raises:
        ConfigError: If value is not a list.
    """
    if value is None:
        return []

    if not isinstance(value, list):
        raise ConfigError(
            f"Config '{field_name}' must be a list, got {type(value).__name__}"
        )

    result: list[str] = []
    for item in value:
        resolved = _raw_resolve(item)
        if resolved:
            result.append(resolved)
    return result


def _section(raw: dict, key: str) -> dict:
    """Return a nested mapping, treating an absent or empty key as {}."""
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a YAML mapping")
    return value


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MicrosoftOAuth2Config:
    """Entra ID app registration used to mint XOAUTH2 bearer tokens.

    Attributes:
        tenant_id: Entra ID tenant ID.
        client_id: Application (client) ID.
        client_secret: Client secret value (auto-redacted in logs).
    """

    tenant_id: str
    client_id: str
    client_secret: str

    def __post_init__(self) -> None:
        SecretFilter.register_secret(self.client_secret)


@dataclass(frozen=True)
class Pop3Config:
    """Settings for one POP3 session.

    Attributes:
        host: POP3 server hostname.
        username: Mailbox user name.
        password: Password, APOP shared secret, or bearer token when no
            token provider is configured (auto-redacted in logs).
        port: POP3 port.
        apop_enabled: Use APOP when the greeting carries a challenge.
        token_auth_enabled: Allow token mechanisms (XOAUTH2).
        auth_mechanisms: Accepted token mechanism names, in preference order.
        disable_capa: Skip the ``CAPA`` query.  Token mechanisms are then
            used without requiring the server to advertise them.
        xoauth2_split_format: Start XOAUTH2 in the two-line format instead
            of trying the single-line format first.
        connect_timeout_seconds: Timeout for the TCP handshake.
        timeout_seconds: Timeout for each read or write.
        probe_before_open: Send ``NOOP`` before opening a folder.
        microsoft_oauth2: Token provider settings, if tokens come from MSAL.
    """

    host: str
    username: str
    password: str = ""
    port: int = 110
    apop_enabled: bool = False
    token_auth_enabled: bool = False
    auth_mechanisms: tuple[str, ...] = (Mechanism.XOAUTH2.value,)
    disable_capa: bool = False
    xoauth2_split_format: bool = False
    connect_timeout_seconds: float = 10.0
    timeout_seconds: float = 30.0
    probe_before_open: bool = True
    microsoft_oauth2: MicrosoftOAuth2Config | None = None

    def __post_init__(self) -> None:
        """Validate configuration and register secrets.

        Raises:
            ValueError: If configuration is invalid.
        """
        SecretFilter.register_secret(self.password)

        if not self.host:
            raise ValueError("POP3 host cannot be empty")
        if not (1 <= self.port <= 65535):
            raise ValueError(f"Invalid POP3 port: {self.port}")
        if self.connect_timeout_seconds <= 0:
            raise ValueError(
                f"Connect timeout must be > 0s: {self.connect_timeout_seconds}"
            )
        if self.timeout_seconds <= 0:
            raise ValueError(f"Timeout must be > 0s: {self.timeout_seconds}")

        normalized = tuple(name.upper() for name in self.auth_mechanisms)
        unknown = [name for name in normalized if name not in TOKEN_MECHANISMS]
        if unknown:
            raise ValueError(
                f"Unsupported token mechanism(s): {', '.join(unknown)}"
            )
        if self.token_auth_enabled and not normalized:
            raise ValueError(
                "Token authentication enabled but no mechanisms listed"
            )
        # Frozen dataclass: bypass __setattr__ to store normalized names.
        object.__setattr__(self, "auth_mechanisms", normalized)

        logger.debug(
            "POP3 config loaded: %s:%d, apop=%s, token=%s, capa=%s",
            self.host,
            self.port,
            self.apop_enabled,
            self.token_auth_enabled,
            "off" if self.disable_capa else "on",
        )

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> "Pop3Config":
        """Load configuration from a YAML file.

        Values tagged with ``!env VAR_NAME`` are resolved from the
        environment at load time.  A ``.env`` file is loaded first if
        present.

        Args:
            config_path: Path to YAML config file.  Defaults to
                :func:`get_config_path`.

        Returns:
            Pop3Config instance.

        Raises:
            ConfigError: If the file is missing or required values are absent.
        """
        load_dotenv_once(get_dotenv_path())

        if config_path is None:
            config_path = get_config_path()

        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            try:
                raw = yaml.load(f, Loader=_make_loader())
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {config_path}: {e}")

        if not isinstance(raw, dict):
            raise ConfigError(
                f"Config file must be a YAML mapping: {config_path}"
            )

        return cls._from_raw(raw)

    @classmethod
    def _from_raw(cls, raw: dict) -> "Pop3Config":
        """Build config from parsed (but unresolved) YAML dict."""
        server = _section(raw, "server")
        account = _section(raw, "account")
        auth = _section(raw, "auth")
        token = _section(auth, "token")
        folder = _section(raw, "folder")

        mechanisms = _resolve_string_list(
            token.get("mechanisms"), field_name="auth.token.mechanisms"
        )

        try:
            return cls(
                host=_resolve(server.get("host"), str, required="server.host"),
                port=_resolve(server.get("port"), int, default=110),
                connect_timeout_seconds=_resolve(
                    server.get("connect_timeout"), float, default=10.0
                ),
                timeout_seconds=_resolve(
                    server.get("timeout"), float, default=30.0
                ),
                disable_capa=_resolve(
                    server.get("disable_capa"), bool, default=False
                ),
                username=_resolve(
                    account.get("username"), str, required="account.username"
                ),
                password=_resolve(account.get("password"), str, default=""),
                apop_enabled=_resolve(auth.get("apop"), bool, default=False),
                token_auth_enabled=_resolve(
                    token.get("enabled"), bool, default=False
                ),
                auth_mechanisms=(
                    tuple(mechanisms)
                    if mechanisms
                    else (Mechanism.XOAUTH2.value,)
                ),
                xoauth2_split_format=_resolve(
                    token.get("split_format"), bool, default=False
                ),
                probe_before_open=_resolve(
                    folder.get("probe_before_open"), bool, default=True
                ),
                microsoft_oauth2=_parse_microsoft_oauth2(
                    _section(auth, "microsoft_oauth2")
                ),
            )
        except ValueError as e:
            raise ConfigError(str(e)) from e


def _parse_microsoft_oauth2(raw: dict) -> MicrosoftOAuth2Config | None:
    """Parse the optional ``auth.microsoft_oauth2`` section.

    Returns None when the section is absent or its tenant is unset, so
    that ``tenant_id: !env ...`` can switch MSAL off per deployment.
    """
    tenant_id = _resolve(raw.get("tenant_id"), str)
    if not tenant_id:
        return None
    prefix = "auth.microsoft_oauth2"
    return MicrosoftOAuth2Config(
        tenant_id=tenant_id,
        client_id=_resolve(
            raw.get("client_id"), str, required=f"{prefix}.client_id"
        ),
        client_secret=_resolve(
            raw.get("client_secret"), str, required=f"{prefix}.client_secret"
        ),
    )
