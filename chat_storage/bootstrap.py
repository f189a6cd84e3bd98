"""Startup wiring: logging, the shared pool and a migrated repository."""

from chat_storage.adapters.repository_factory import create_repository
from chat_storage.adapters.sql_repository import SQLChatStorageRepository
from chat_storage.config.logging_config import get_logger, setup_logging
from chat_storage.config.settings import Settings
from chat_storage.domain.exceptions import RepositoryError

logger = get_logger(__name__)


def initialize_logging(settings: Settings, *, json_logs: bool | None = None) -> None:
    """Initialize structlog-based logging from settings."""
    use_json = settings.json_logs if json_logs is None else json_logs
    setup_logging(log_level=settings.log_level, json_logs=use_json)
    logger.info("logging_initialized", level=settings.log_level, json_logs=use_json)


def initialize_chat_storage(settings: Settings) -> SQLChatStorageRepository:
    """Build the repository and bring its schema up to date.

    Call once per process and inject the result; nothing else should reach
    the repository before this returns. The pool is closed before a startup
    error propagates.

    Raises:
        MigrationError: If a migration step fails
        RepositoryError: If the schema version cannot be read
    """
    repository = create_repository(settings)
    try:
        applied = repository.initialize_schema()
    except RepositoryError as exc:
        logger.error(
            "chat_storage_startup_aborted",
            dialect=settings.dialect.value,
            error=str(exc),
        )
        repository.close()
        raise

    logger.info(
        "chat_storage_ready",
        dialect=settings.dialect.value,
        migrations_applied=applied,
        schema_version=repository.schema_version(),
    )
    return repository
