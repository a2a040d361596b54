"""Configuration system for ssokit using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.ssokit] section (project-level)
3. ./ssokit.toml (project-level, explicit)
4. ~/.config/ssokit/config.toml (user-level, overrides project)
5. The file named by SSOKIT_CONFIG_FILE
6. Environment variables (highest priority)

Each section reads its own environment prefix with nested delimiter __.
Example: SSOKIT_OIDC__CLIENT_ID, SSOKIT_STORAGE__BACKEND
"""

from __future__ import annotations

import logging
import os
import sys

from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


logger = logging.getLogger("ssokit.config")


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    # Project-level pyproject.toml [tool.ssokit] (lowest file priority)
    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    # Explicit ssokit.toml (project-level)
    ssokit_toml = Path("ssokit.toml")
    if ssokit_toml.exists():
        files.append(ssokit_toml)

    # User-level config (overrides project configs)
    if sys.platform == "win32":
        user_config = Path(os.environ.get("APPDATA", "~")) / "ssokit" / "config.toml"
    else:
        user_config = Path("~/.config/ssokit/config.toml")
    user_config = user_config.expanduser()
    if user_config.exists():
        files.append(user_config)

    # Environment variable override for config file (highest file priority)
    env_config = os.environ.get("SSOKIT_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config)
        if env_path.exists():
            files.append(env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("Ignoring invalid config file %s: %s", config_file, exc)
            continue

        # Handle pyproject.toml [tool.ssokit] section
        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get("ssokit", {})

        merged = _deep_merge(merged, data)

    return merged


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# Field names that contain sensitive data and must be redacted in output.
_SENSITIVE_FIELDS: set[str] = {
    "client_secret",
}

_REDACTED = "********"


class OIDCSettings(BaseSettings):
    """OpenID Connect client configuration.

    Environment prefix: SSOKIT_OIDC__
    Example: SSOKIT_OIDC__CLIENT_ID=your-client-id
    Example: SSOKIT_OIDC__ISSUER_URL=https://login.example.com

    TOML section: [tool.ssokit.oidc]
    """

    model_config = SettingsConfigDict(
        env_prefix="SSOKIT_OIDC__",
        extra="ignore",
    )

    # Client credentials
    client_id: str = Field(
        default="",
        description="OAuth2 client ID registered with the issuer",
    )
    client_secret: str = Field(
        default="",
        description="OAuth2 client secret, sent with every token request",
    )

    issuer_url: str = Field(
        default="",
        description="OIDC issuer URL used for discovery and ID token validation",
    )

    # Redirects
    login_redirect_uri: str = Field(
        default="",
        description="Redirect URI that completes the login flow",
    )
    logout_redirect_uri: str = Field(
        default="",
        description="Redirect URI the issuer returns to after logout",
    )
    resume_redirect_uri: str = Field(
        default="",
        description="Secondary resume URI used by external identification apps (optional)",
    )

    scopes: str = Field(
        default="openid profile",
        description="Space-separated scopes to request",
    )

    # Validation and timing
    clock_skew_tolerance: int = Field(
        default=120,
        ge=0,
        description="Seconds of clock skew accepted when validating ID tokens",
    )
    offline_fallback_timeout: float = Field(
        default=5.0,
        description="Seconds to wait for the startup refresh (negative disables the fallback)",
    )
    use_pkce: bool = Field(
        default=True,
        description="Use PKCE (Proof Key for Code Exchange) for authorization requests",
    )
    http_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for discovery and token requests",
    )

    _REQUIRED: ClassVar[tuple[str, ...]] = (
        "client_id",
        "issuer_url",
        "login_redirect_uri",
        "logout_redirect_uri",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def normalize_scopes(cls, v: Any) -> str:
        """Accept a list of scopes or a space/comma separated string."""
        if isinstance(v, (list, tuple)):
            v = " ".join(str(s) for s in v)
        return " ".join(str(v).replace(",", " ").split())

    @property
    def scope_list(self) -> list[str]:
        """The configured scopes as a list."""
        return self.scopes.split()

    def require_complete(self) -> None:
        """Check that every value needed to run a session manager is set.

        Validation happens at usage time rather than init time to allow
        partial configuration via env vars.

        Raises
        ------
        ConfigurationError
            Naming the first missing setting.
        """
        for name in self._REQUIRED:
            if not getattr(self, name):
                env_name = f"SSOKIT_OIDC__{name.upper()}"
                msg = f"Missing OIDC setting '{name}' (set {env_name} or [oidc].{name})"
                raise ConfigurationError(msg, setting=name)


class StorageSettings(BaseSettings):
    """Session persistence settings.

    Environment prefix: SSOKIT_STORAGE__
    Example: SSOKIT_STORAGE__BACKEND=memory
    """

    model_config = SettingsConfigDict(
        env_prefix="SSOKIT_STORAGE__",
        extra="ignore",
    )

    backend: Literal["memory", "keyring"] = Field(
        default="keyring",
        description="Session storage backend: memory or keyring",
    )
    service_name: str = Field(
        default="ssokit",
        description="Keyring service name, shared by apps that share a session",
    )
    key: str = Field(
        default="ssokit.session",
        description="Keyring entry holding the session record",
    )


class LogSettings(BaseSettings):
    """Logging settings.

    Environment prefix: SSOKIT_LOG__
    Example: SSOKIT_LOG__LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="SSOKIT_LOG__",
        extra="ignore",
    )

    level: Literal["debug", "info", "warning", "error", "none"] = "warning"
    include_filename: bool = False
    include_function: bool = False

    @field_validator("level", mode="before")
    @classmethod
    def lower_level(cls, v: Any) -> Any:
        """Accept level names in any case."""
        return v.lower() if isinstance(v, str) else v


_SECTIONS: dict[str, type[BaseSettings]] = {
    "oidc": OIDCSettings,
    "storage": StorageSettings,
    "log": LogSettings,
}


class SSOKitSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Environment prefix: SSOKIT__

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.ssokit] section
    3. ./ssokit.toml (project-level)
    4. ~/.config/ssokit/config.toml (user-level, overrides project)
    5. SSOKIT_CONFIG_FILE
    6. Environment variables (highest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="SSOKIT__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    oidc: OIDCSettings = Field(default_factory=OIDCSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    def __init__(self, **data: Any) -> None:
        # Load TOML configuration first
        toml_config = _load_toml_config()

        # Section env vars override the TOML values of the same section.
        for name, section_cls in _SECTIONS.items():
            section = toml_config.get(name)
            if isinstance(section, dict):
                from_env = section_cls().model_dump(exclude_unset=True)
                toml_config[name] = _deep_merge(section, from_env)

        # Merge TOML config with explicit data (explicit takes precedence)
        merged = _deep_merge(toml_config, data)
        super().__init__(**merged)

    def _value_str(self, value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def to_toml(self) -> str:
        """Export settings as TOML string."""
        lines = ["# ssokit Configuration", "# Generated by: ssokit config --toml", ""]

        all_data = self.model_dump(exclude=dict.fromkeys(_SECTIONS, _SENSITIVE_FIELDS))

        for section_name, section_cls in _SECTIONS.items():
            section_data = all_data.get(section_name, {})
            lines.append(f"[{section_name}]")
            for field_name, field_value in section_data.items():
                if isinstance(field_value, str):
                    value_str = f'"{field_value}"'
                else:
                    value_str = self._value_str(field_value)
                lines.append(f"{field_name} = {value_str}")
            lines.extend(
                f'{rn} = "{_REDACTED}"'
                for rn in sorted(_SENSITIVE_FIELDS & section_cls.model_fields.keys())
            )
            lines.append("")

        return "\n".join(lines)

    def to_env(self) -> str:
        """Export settings as shell environment variables."""
        lines = [
            "# ssokit Environment Variables",
            "# Generated by: ssokit config --env",
            "",
        ]

        all_data = self.model_dump(exclude=dict.fromkeys(_SECTIONS, _SENSITIVE_FIELDS))

        for section_name, section_cls in _SECTIONS.items():
            prefix = f"SSOKIT_{section_name.upper()}__"
            section_data = all_data.get(section_name, {})
            for field_name, field_value in section_data.items():
                lines.append(
                    f'export {prefix}{field_name.upper()}="{self._value_str(field_value)}"'
                )
            for redacted_name in sorted(_SENSITIVE_FIELDS & section_cls.model_fields.keys()):
                lines.append(f'export {prefix}{redacted_name.upper()}="{_REDACTED}"')

        return "\n".join(lines)

    def show(self) -> str:
        """Format settings as a readable table."""
        lines = ["ssokit Configuration", "=" * 60, ""]

        show_sections = [
            ("OpenID Connect", "oidc"),
            ("Session Storage", "storage"),
            ("Logging", "log"),
        ]

        all_data = self.model_dump(exclude=dict.fromkeys(_SECTIONS, _SENSITIVE_FIELDS))

        for display_name, attr_name in show_sections:
            section_data = all_data.get(attr_name, {})
            lines.append(f"\n{display_name}")
            lines.append("-" * 40)
            for field_name, field_value in section_data.items():
                # Truncate long values
                value_str = str(field_value)
                if len(value_str) > 50:
                    value_str = value_str[:47] + "..."
                lines.append(f"  {field_name:24} = {value_str}")
            section_cls = _SECTIONS[attr_name]
            lines.extend(
                f"  {rn:24} = {_REDACTED}"
                for rn in sorted(_SENSITIVE_FIELDS & section_cls.model_fields.keys())
            )

        return "\n".join(lines)


@lru_cache(maxsize=1)
def get_settings() -> SSOKitSettings:
    """Get the global settings instance (cached).

    Call clear_settings() to reload configuration.
    """
    return SSOKitSettings()


def clear_settings() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()


def reload_settings() -> SSOKitSettings:
    """Reload settings from all sources."""
    clear_settings()
    return get_settings()
