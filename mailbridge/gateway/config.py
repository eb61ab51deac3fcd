# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Configuration for the email channel.

Configuration is loaded from a YAML file.  The default location follows
the XDG Base Directory Specification:

    ``$XDG_CONFIG_HOME/mailbridge/mailbridge.yaml``
    (typically ``~/.config/mailbridge/mailbridge.yaml``)

``!env`` tags resolve values from environment variables, after ``.env``
files have been loaded (see ``dotenv_loader``).  Everything lives under
a top-level ``email:`` mapping::

    email:
      imap_server: mail.example.com
      imap_username: bot@example.com
      imap_password: !env MAILBRIDGE_PASSWORD
      smtp_server: mail.example.com
      from: "Bot <bot@example.com>"
      allowed_senders:
        - you@example.com
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar, overload

import yaml
from platformdirs import user_config_path

from mailbridge.gateway.dotenv_loader import load_dotenv_once
from mailbridge.logging import SecretFilter


logger = logging.getLogger(__name__)

#: Application name for XDG path resolution.
_APP_NAME = "mailbridge"

_BOOL_TRUTHY = frozenset({"true", "1", "yes", "on"})
_BOOL_FALSY = frozenset({"false", "0", "no", "off"})


def get_config_path() -> Path:
    """Return the default config file path.

    Returns:
        ``$XDG_CONFIG_HOME/mailbridge/mailbridge.yaml``.
    """
    return user_config_path(_APP_NAME) / "mailbridge.yaml"


def get_dotenv_path() -> Path:
    """Return the ``.env`` path inside the XDG config directory."""
    return user_config_path(_APP_NAME) / ".env"


class ConfigError(Exception):
    """Base exception for configuration errors."""


# ---------------------------------------------------------------------------
# YAML tag placeholders
# ---------------------------------------------------------------------------


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)  # type: ignore[arg-type]
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

    Returns None if the value is None or the env var is not set.
    """
    if isinstance(value, _EnvVar):
        return os.environ.get(value.var_name)
    if value is None:
        return None
    return str(value)


_MISSING = object()

T = TypeVar("T")


@overload
def _resolve(value: object, coerce: type[T], *, default: T) -> T: ...


@overload
def _resolve(value: object, coerce: type[T], *, required: str) -> T: ...


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
        coerce: Target type (``str``, ``int``, ``bool``).
        default: Default when value is absent.
        required: Human-readable field name.  When set, raises
            ``ConfigError`` if the value is absent.

    Returns:
        The resolved, coerced value, or None when optional and absent.

    Raises:
        ConfigError: If a required value is missing or coercion fails.
    """
    if not isinstance(value, _EnvVar) and value is not None:
        if coerce is bool:
            return _coerce_bool(value)
        if isinstance(value, coerce):
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
            f"Config '{required or resolved}': cannot convert "
            f"{resolved!r} to {coerce.__name__}"
        ) from e


def _resolve_string_list(value: object, *, name: str) -> list[str]:
    """Resolve a list of strings, handling ``!env`` for each element.

    Missing lists resolve to an empty list (which, for the sender
    allow-list, denies everything).

    Raises:
        ConfigError: If value is present but not a list.
    """
    if value is None:
        return []

    if not isinstance(value, list):
        raise ConfigError(
            f"Config '{name}' must be a list, got {type(value).__name__}"
        )

    result: list[str] = []
    for item in value:
        resolved = _raw_resolve(item)
        if resolved:
            result.append(resolved)
    return result


# ---------------------------------------------------------------------------
# Email channel configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmailChannelConfig:
    """Email channel settings.

    Attributes:
        imap_server: IMAP server hostname.
        imap_username: IMAP login.
        imap_password: IMAP password (auto-redacted in logs).
        smtp_server: SMTP server hostname.
        smtp_username: SMTP login.
        smtp_password: SMTP password (auto-redacted in logs).
        from_address: From address for outgoing mail, bare or
            ``Name <addr>``.
        imap_port: IMAP port.
        imap_starttls: Upgrade a plain IMAP connection with STARTTLS
            instead of connecting with implicit TLS.
        imap_folder: Mailbox folder to poll.
        smtp_port: SMTP port.
        smtp_starttls: Upgrade a plain SMTP connection with STARTTLS
            instead of connecting with implicit TLS.
        poll_interval_seconds: Seconds between polls.  The listener
            enforces a floor of 5 seconds regardless of this value.
        allowed_senders: Sender addresses allowed to reach the bus.
            ``"*"`` allows everyone; an empty list allows no one.
    """

    imap_server: str
    imap_username: str
    imap_password: str
    smtp_server: str
    smtp_username: str
    smtp_password: str
    from_address: str
    imap_port: int = 993
    imap_starttls: bool = False
    imap_folder: str = "INBOX"
    smtp_port: int = 465
    smtp_starttls: bool = False
    poll_interval_seconds: int = 60
    allowed_senders: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Validate configuration and register secrets.

        Raises:
            ConfigError: If configuration is invalid.
        """
        SecretFilter.register_secret(self.imap_password)
        SecretFilter.register_secret(self.smtp_password)

        if not self.imap_server:
            raise ConfigError("email.imap_server cannot be empty")
        if not self.smtp_server:
            raise ConfigError("email.smtp_server cannot be empty")
        if not self.imap_folder:
            raise ConfigError("email.imap_folder cannot be empty")
        if not (1 <= self.imap_port <= 65535):
            raise ConfigError(f"Invalid IMAP port: {self.imap_port}")
        if not (1 <= self.smtp_port <= 65535):
            raise ConfigError(f"Invalid SMTP port: {self.smtp_port}")

        logger.debug(
            "Email config loaded: imap=%s:%d/%s, smtp=%s:%d, allowed=%s",
            self.imap_server,
            self.imap_port,
            self.imap_folder,
            self.smtp_server,
            self.smtp_port,
            self.allowed_senders,
        )

    @property
    def channel_type(self) -> str:
        """Channel type identifier."""
        return "email"

    @property
    def channel_info(self) -> str:
        """Short description for status output."""
        return f"{self.imap_username} @ {self.imap_server}/{self.imap_folder}"

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> "EmailChannelConfig":
        """Load configuration from a YAML file.

        Values tagged with ``!env VAR_NAME`` are resolved from the
        environment at load time.  ``.env`` files are loaded first.

        Args:
            config_path: Path to the YAML file.  Defaults to
                ``get_config_path()``.

        Returns:
            EmailChannelConfig instance.

        Raises:
            ConfigError: If the file is missing or values are invalid.
        """
        load_dotenv_once()

        if config_path is None:
            config_path = get_config_path()

        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            try:
                raw = yaml.load(f, Loader=_make_loader())
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigError(
                f"Config file must be a YAML mapping: {config_path}"
            )

        return cls.from_raw(raw)

    @classmethod
    def from_raw(cls, raw: dict) -> "EmailChannelConfig":
        """Build config from a parsed (but unresolved) YAML mapping.

        SMTP credentials fall back to the IMAP ones when omitted, which is
        the common single-account setup.
        """
        email = raw.get("email")
        if not isinstance(email, dict):
            raise ConfigError("'email' must be a YAML mapping")

        imap_username = _resolve(
            email.get("imap_username"), str, required="email.imap_username"
        )
        imap_password = _resolve(
            email.get("imap_password"), str, required="email.imap_password"
        )

        return cls(
            imap_server=_resolve(
                email.get("imap_server"), str, required="email.imap_server"
            ),
            imap_port=_resolve(email.get("imap_port"), int, default=993),
            imap_username=imap_username,
            imap_password=imap_password,
            imap_starttls=_resolve(
                email.get("imap_starttls"), bool, default=False
            ),
            imap_folder=_resolve(
                email.get("imap_folder"), str, default="INBOX"
            ),
            smtp_server=_resolve(
                email.get("smtp_server"), str, required="email.smtp_server"
            ),
            smtp_port=_resolve(email.get("smtp_port"), int, default=465),
            smtp_username=_resolve(
                email.get("smtp_username"), str, default=imap_username
            ),
            smtp_password=_resolve(
                email.get("smtp_password"), str, default=imap_password
            ),
            smtp_starttls=_resolve(
                email.get("smtp_starttls"), bool, default=False
            ),
            from_address=_resolve(
                email.get("from"), str, required="email.from"
            ),
            poll_interval_seconds=_resolve(
                email.get("poll_interval_seconds"), int, default=60
            ),
            allowed_senders=_resolve_string_list(
                email.get("allowed_senders"), name="email.allowed_senders"
            ),
        )
