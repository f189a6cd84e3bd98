"""Application settings with Pydantic Settings validation.

Secrets (database password) are loaded from the environment or a .env file.
Non-sensitive configuration is loaded from config/*.yaml files, merged and
validated against JSON schemas in config/schemas/.
"""

import json
from pathlib import Path
from typing import Any, Final, Literal, cast

import yaml
from jsonschema import ValidationError as JSONSchemaValidationError
from jsonschema import validate
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from chat_storage.adapters.dialect import SQLDialect
from chat_storage.config.logging_config import get_logger

POSTGRES_MIN_CONNECTIONS_DEFAULT: Final[int] = 1
POSTGRES_MAX_CONNECTIONS_DEFAULT: Final[int] = 25
POSTGRES_STATEMENT_TIMEOUT_MS_DEFAULT: Final[int] = 10_000
POSTGRES_CONNECT_TIMEOUT_SECONDS_DEFAULT: Final[int] = 10
POSTGRES_APPLICATION_NAME_DEFAULT: Final[str] = "chat_storage"
SQLITE_BUSY_TIMEOUT_SECONDS_DEFAULT: Final[float] = 5.0
POOL_ACQUIRE_MAX_ATTEMPTS_DEFAULT: Final[int] = 5

POSTGRES_URI_PREFIXES: Final[tuple[str, ...]] = ("postgres://", "postgresql://")
SQLITE_URI_PREFIXES: Final[tuple[str, ...]] = ("file:", "sqlite:")

logger = cast(Any, get_logger(__name__))


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge into base (takes precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_schema(schema_name: str, config_dir: Path) -> dict[str, Any]:
    """Load JSON Schema from <config_dir>/schemas/, or {} if absent."""
    schema_path = config_dir / "schemas" / f"{schema_name}.schema.json"
    if not schema_path.exists():
        return {}

    try:
        with open(schema_path, encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(
            "config_schema_load_failed",
            schema=schema_name,
            error=str(e),
        )
        return {}


def validate_config_section(
    config: dict[str, Any], schema_name: str, config_dir: Path, file_path: str = ""
) -> None:
    """Validate config section against JSON Schema.

    Raises:
        ValueError: If validation fails
    """
    schema = load_schema(schema_name, config_dir)
    if not schema:
        return

    try:
        validate(instance=config, schema=schema)
        logger.debug("config_validation_succeeded", schema=schema_name)
    except JSONSchemaValidationError as e:
        error_msg = f"Config validation failed for {schema_name}"
        if file_path:
            error_msg += f" (file: {file_path})"
        error_msg += f": {e.message}"
        raise ValueError(error_msg) from e


def load_all_configs(config_dir: Path = Path("config")) -> dict[str, Any]:
    """Load and merge all YAML configs from the config directory.

    config/main.yaml is loaded first; other *.yaml files follow alphabetically
    and override it. Each file is validated against its schema when one exists.
    """
    merged_config: dict[str, Any] = {}
    if not config_dir.is_dir():
        return merged_config

    main_path = config_dir / "main.yaml"
    yaml_files = [main_path] if main_path.exists() else []
    yaml_files += sorted(f for f in config_dir.glob("*.yaml") if f.name != "main.yaml")

    for yaml_file in yaml_files:
        try:
            with open(yaml_file, encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning(
                "config_file_load_failed",
                path=str(yaml_file),
                error=str(e),
            )
            continue

        try:
            validate_config_section(
                file_config, yaml_file.stem, config_dir, str(yaml_file)
            )
        except ValueError as e:
            logger.error(
                "config_validation_failed",
                path=str(yaml_file),
                schema=yaml_file.stem,
                error=str(e),
            )
            raise

        merged_config = deep_merge(merged_config, file_config)
        logger.debug("config_file_loaded", path=str(yaml_file))

    logger.info("config_load_complete", file_count=len(yaml_files))
    return merged_config


def validate_storage_uri(value: str | None) -> str | None:
    """Return a supported storage URI, None for blank values.

    Raises:
        ValueError: If the scheme is not postgres, postgresql, file or sqlite
    """
    if value is None or not value.strip():
        return None
    if not value.startswith(POSTGRES_URI_PREFIXES + SQLITE_URI_PREFIXES):
        raise ValueError(
            "chat_storage_uri must start with postgres://, postgresql://, file: or sqlite:"
        )
    return value


class Settings(BaseSettings):
    """Application settings.

    Environment values always win over YAML values.
    """

    model_config = SettingsConfigDict(
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === SECRETS (from environment / .env) ===

    postgres_password: SecretStr | None = Field(
        default=None, description="PostgreSQL password (from .env, optional)"
    )

    # === NON-SENSITIVE CONFIG (from config/main.yaml or defaults) ===

    database_type: Literal["sqlite", "postgres"] = Field(
        default="sqlite", description="Database type: sqlite or postgres"
    )
    db_path: str = Field(
        default="storages/chatstorage.db", description="SQLite database path"
    )
    chat_storage_uri: str | None = Field(
        default=None,
        description="Optional storage URI (postgres://... or file:path.db); overrides database_type",
    )
    sqlite_busy_timeout_seconds: float = Field(
        default=SQLITE_BUSY_TIMEOUT_SECONDS_DEFAULT,
        gt=0,
        description="Seconds a SQLite call waits on a locked database",
    )
    postgres_host: str = Field(default="localhost", description="PostgreSQL host")
    postgres_port: int = Field(default=5432, description="PostgreSQL port")
    postgres_database: str = Field(
        default="chat_storage", description="PostgreSQL database name"
    )
    postgres_user: str = Field(default="postgres", description="PostgreSQL user")
    postgres_min_connections: int = Field(
        default=POSTGRES_MIN_CONNECTIONS_DEFAULT,
        description="Minimum number of connections in PostgreSQL pool",
    )
    postgres_max_connections: int = Field(
        default=POSTGRES_MAX_CONNECTIONS_DEFAULT,
        description="Maximum number of connections in PostgreSQL pool",
    )
    postgres_statement_timeout_ms: int = Field(
        default=POSTGRES_STATEMENT_TIMEOUT_MS_DEFAULT,
        description="PostgreSQL statement timeout in milliseconds",
    )
    postgres_connect_timeout_seconds: int = Field(
        default=POSTGRES_CONNECT_TIMEOUT_SECONDS_DEFAULT,
        description="PostgreSQL connection timeout in seconds",
    )
    postgres_application_name: str = Field(
        default=POSTGRES_APPLICATION_NAME_DEFAULT,
        description="Application name for PostgreSQL connections",
    )
    postgres_ssl_mode: str | None = Field(
        default=None,
        description="Optional SSL mode for PostgreSQL connections (e.g., require)",
    )
    pool_acquire_max_attempts: int = Field(
        default=POOL_ACQUIRE_MAX_ATTEMPTS_DEFAULT,
        ge=1,
        description="Attempts to borrow a pooled connection before failing",
    )

    # Observability
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Emit logs as JSON")

    def __init__(self, **data: Any):
        """Initialize settings with auto-loaded configs from all YAML files."""
        config = load_all_configs()

        super().__init__(**data)
        self._apply_yaml_defaults(config)

    def _apply_yaml_defaults(self, config: dict[str, Any]) -> None:
        """Apply YAML-sourced defaults without overriding env-provided values."""

        fields_from_env = set(self.model_fields_set)

        def _assign(field_name: str, value: Any) -> None:
            if value is None:
                return
            if field_name in fields_from_env:
                return

            object.__setattr__(self, field_name, value)
            self.model_fields_set.add(field_name)

        database_config = config.get("database") or {}
        _assign("database_type", database_config.get("type"))
        _assign("db_path", database_config.get("path"))
        _assign("chat_storage_uri", validate_storage_uri(database_config.get("uri")))
        _assign(
            "sqlite_busy_timeout_seconds",
            database_config.get("sqlite_busy_timeout_seconds"),
        )
        _assign(
            "pool_acquire_max_attempts",
            database_config.get("pool_acquire_max_attempts"),
        )

        postgres_config = database_config.get("postgres") or {}
        _assign("postgres_host", postgres_config.get("host"))
        _assign("postgres_port", postgres_config.get("port"))
        _assign("postgres_database", postgres_config.get("database"))
        _assign("postgres_user", postgres_config.get("user"))
        _assign("postgres_min_connections", postgres_config.get("min_connections"))
        _assign("postgres_max_connections", postgres_config.get("max_connections"))
        _assign(
            "postgres_statement_timeout_ms",
            postgres_config.get("statement_timeout_ms"),
        )
        _assign(
            "postgres_connect_timeout_seconds",
            postgres_config.get("connect_timeout_seconds"),
        )
        _assign("postgres_ssl_mode", postgres_config.get("ssl_mode"))

        logging_config = config.get("logging") or {}
        _assign("log_level", logging_config.get("level"))
        _assign("json_logs", logging_config.get("json"))

    @field_validator("chat_storage_uri")
    @classmethod
    def _validate_uri(cls, value: str | None) -> str | None:
        return validate_storage_uri(value)

    @property
    def dialect(self) -> SQLDialect:
        """SQL dialect selected by chat_storage_uri, else database_type."""
        if self.chat_storage_uri:
            if self.chat_storage_uri.startswith(POSTGRES_URI_PREFIXES):
                return SQLDialect.POSTGRES
            return SQLDialect.SQLITE
        return SQLDialect(self.database_type)

    @property
    def sqlite_path(self) -> str:
        """SQLite file path, taken from a file:/sqlite: URI when one is set."""
        uri = self.chat_storage_uri
        if uri and uri.startswith(SQLITE_URI_PREFIXES):
            path = uri.split(":", 1)[1]
            if path.startswith("//"):
                path = path[2:]
            return path.split("?", 1)[0]
        return self.db_path

    @property
    def postgres_dsn(self) -> str | None:
        """PostgreSQL DSN from chat_storage_uri, if one is configured."""
        uri = self.chat_storage_uri
        if uri and uri.startswith(POSTGRES_URI_PREFIXES):
            return uri
        return None


# Global settings instance, for scripts only; library code takes Settings explicitly.
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
