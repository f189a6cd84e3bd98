"""Factory for creating chat storage repository instances."""

from chat_storage.adapters.dialect import SQLDialect
from chat_storage.adapters.postgres_pool import PostgresConnectionPool
from chat_storage.adapters.sql_repository import SQLChatStorageRepository
from chat_storage.adapters.sqlite_pool import SQLiteConnectionPool
from chat_storage.config.logging_config import get_logger
from chat_storage.config.settings import Settings
from chat_storage.domain.protocols import ConnectionPool

logger = get_logger(__name__)


def create_connection_pool(settings: Settings) -> ConnectionPool:
    """Create the connection pool for the configured dialect.

    Raises:
        ValueError: If PostgreSQL is selected without a password or DSN
        RepositoryError: On connection errors
    """
    if settings.dialect is SQLDialect.SQLITE:
        logger.info("repository_sqlite_selected", path=settings.sqlite_path)
        return SQLiteConnectionPool(
            settings.sqlite_path,
            busy_timeout_seconds=settings.sqlite_busy_timeout_seconds,
        )

    dsn = settings.postgres_dsn
    if dsn is None and not settings.postgres_password:
        raise ValueError(
            "POSTGRES_PASSWORD environment variable must be set when using PostgreSQL"
        )

    logger.info(
        "repository_postgres_selected",
        host=settings.postgres_host if dsn is None else None,
        port=settings.postgres_port if dsn is None else None,
        database=settings.postgres_database if dsn is None else None,
        from_uri=dsn is not None,
    )
    return PostgresConnectionPool(
        dsn=dsn,
        host=settings.postgres_host,
        port=settings.postgres_port,
        database=settings.postgres_database,
        user=settings.postgres_user,
        password=(
            settings.postgres_password.get_secret_value()
            if settings.postgres_password
            else None
        ),
        min_connections=settings.postgres_min_connections,
        max_connections=settings.postgres_max_connections,
        statement_timeout_ms=settings.postgres_statement_timeout_ms,
        connect_timeout_seconds=settings.postgres_connect_timeout_seconds,
        application_name=settings.postgres_application_name,
        ssl_mode=settings.postgres_ssl_mode,
        acquire_max_attempts=settings.pool_acquire_max_attempts,
    )


def create_repository(settings: Settings) -> SQLChatStorageRepository:
    """Create a chat storage repository based on settings.

    The schema is not migrated here; call initialize_schema() at startup.

    Args:
        settings: Application settings

    Returns:
        Repository bound to a SQLite or PostgreSQL pool
    """
    return SQLChatStorageRepository(create_connection_pool(settings))
