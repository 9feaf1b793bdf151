"""Configuration module for the SurrealDB session store.

Implements Pydantic v2 Settings for configuration management with support for:
- Environment variables (SURREAL_SESSIONS_* prefix)
- YAML/TOML configuration files
- Fail-fast validation at construction

Configuration priority (later overrides earlier):
1. Built-in defaults
2. Configuration file (YAML/TOML)
3. Environment variables
4. Explicit keyword arguments
"""

import re
import warnings
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from surreal_sessions.exceptions import ConfigurationError

DEFAULT_TABLE_NAME = "usersessions"

# Table names are interpolated into DEFINE statements, so only plain
# alphanumerics are allowed.
_TABLE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9]+$")

_URL_SCHEMES = ("ws://", "wss://", "http://", "https://")


def validate_table_name(table_name: str) -> str:
    """Check that a table name is safe to interpolate into a statement.

    Args:
        table_name: Candidate table name

    Returns:
        The table name, unchanged

    Raises:
        ConfigurationError: If the name is empty or not purely alphanumeric
    """
    if not table_name or not _TABLE_NAME_PATTERN.match(table_name):
        raise ConfigurationError(
            f"Invalid table name {table_name!r}: only alphanumeric characters are allowed"
        )
    return table_name


class StoreSettings(BaseSettings):
    """Session store configuration.

    Immutable once constructed. Custom getter/setter hooks, a logger and an
    externally constructed database handle are passed to the store directly,
    since they are not serialisable settings. Direct construction reports
    invalid values as pydantic's ``ValidationError``; use ``create_settings()``
    to get a ``ConfigurationError`` instead.

    Example:
        # Load from environment only
        settings = StoreSettings()

        # Override specific values
        settings = StoreSettings(
            url="ws://localhost:8000/rpc",
            namespace="test",
            database="test",
            username="root",
            password="root",
            table_name="session",
        )
    """

    model_config = SettingsConfigDict(
        env_prefix="SURREAL_SESSIONS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown fields
        frozen=True,
    )

    # ========================================
    # Connection
    # ========================================

    url: str = Field(
        default="ws://127.0.0.1:8000/rpc",
        description="SurrealDB endpoint (ws://, wss://, http:// or https://)",
    )

    namespace: str | None = Field(default=None, description="Namespace to select")

    database: str | None = Field(default=None, description="Database to select")

    username: str | None = Field(default=None, description="Sign-in username")

    password: SecretStr | None = Field(default=None, description="Sign-in password")

    token: SecretStr | None = Field(
        default=None,
        description="Pre-issued access token, used instead of username/password",
    )

    # Legacy "use" options, superseded by namespace/database
    use_namespace: str | None = Field(
        default=None, description="Deprecated alias for namespace"
    )

    use_database: str | None = Field(default=None, description="Deprecated alias for database")

    # ========================================
    # Storage
    # ========================================

    table_name: str = Field(
        default=DEFAULT_TABLE_NAME, description="Table used to store session records"
    )

    # ========================================
    # Expiry Sweep
    # ========================================

    sweep_enabled: bool = Field(
        default=False, description="Periodically delete records whose expiry has passed"
    )

    sweep_interval_seconds: int = Field(
        default=600, ge=1, description="Interval between expiry sweeps"
    )

    # ========================================
    # Logging
    # ========================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    log_format: Literal["json", "text"] = Field(default="json", description="Log output format")

    # ========================================
    # Validators
    # ========================================

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate endpoint URL scheme."""
        if not v.startswith(_URL_SCHEMES):
            raise ValueError("url must start with ws://, wss://, http:// or https://")
        return v

    @field_validator("table_name")
    @classmethod
    def validate_table(cls, v: str) -> str:
        """Reject table names that are not purely alphanumeric."""
        return validate_table_name(v)

    @model_validator(mode="before")
    @classmethod
    def fold_legacy_use_options(cls, data: Any) -> Any:
        """Fold the legacy use_namespace/use_database pair into namespace/database."""
        if not isinstance(data, dict):
            return data

        legacy = {
            "namespace": data.get("use_namespace"),
            "database": data.get("use_database"),
        }
        if not any(legacy.values()):
            return data

        warnings.warn(
            "use_namespace/use_database are deprecated, set namespace/database instead",
            DeprecationWarning,
            stacklevel=2,
        )
        merged = dict(data)
        for key, value in legacy.items():
            if value and not merged.get(key):
                merged[key] = value
        return merged

    @model_validator(mode="after")
    def validate_credentials(self) -> "StoreSettings":
        """Username and password must be set together."""
        if (self.username is None) != (self.password is None):
            raise ValueError("username and password must be provided together")
        return self

    # ========================================
    # Helper Methods
    # ========================================

    @property
    def credentials(self) -> dict[str, str] | None:
        """Sign-in credentials mapping, or None when no user is configured."""
        if self.username is None or self.password is None:
            return None
        return {"username": self.username, "password": self.password.get_secret_value()}

    def to_dict(self) -> dict:
        """Convert settings to dictionary, masking secrets."""
        data = self.model_dump()
        # Mask sensitive fields
        for key in ("password", "token"):
            if data.get(key):
                data[key] = "***REDACTED***"
        return data


# ========================================
# Global Settings Instance
# ========================================

_settings: StoreSettings | None = None


def create_settings(**values: Any) -> StoreSettings:
    """Build settings, reporting invalid values as ``ConfigurationError``.

    Constructing ``StoreSettings`` directly raises pydantic's
    ``ValidationError``; this factory re-raises it inside the
    ``SessionStoreError`` hierarchy.

    Raises:
        ConfigurationError: If any value fails validation
    """
    try:
        return StoreSettings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid session store settings: {e}") from e


def get_settings() -> StoreSettings:
    """Get global settings instance (singleton).

    Returns:
        StoreSettings instance

    Raises:
        ConfigurationError: If the environment holds invalid values
    """
    global _settings
    if _settings is None:
        _settings = create_settings()
    return _settings


def set_settings(settings: StoreSettings | None) -> None:
    """Set (or reset, with None) the global settings instance.

    Args:
        settings: StoreSettings instance to use globally
    """
    global _settings
    _settings = settings


def load_settings_from_file(config_file: Path | str) -> StoreSettings:
    """Load settings from YAML or TOML configuration file.

    Args:
        config_file: Path to configuration file

    Returns:
        StoreSettings instance loaded from file

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file format is unsupported
        ConfigurationError: If a value in the file fails validation

    Example:
        settings = load_settings_from_file("config/sessions.yaml")
        set_settings(settings)
    """
    config_path = Path(config_file)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    if suffix in [".yaml", ".yml"]:
        import yaml

        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}
    elif suffix == ".toml":
        import tomllib

        with open(config_path, "rb") as f:
            config_data = tomllib.load(f)
    else:
        raise ValueError(f"Unsupported config file format: {suffix}. Use .yaml, .yml, or .toml")

    return create_settings(**config_data)
