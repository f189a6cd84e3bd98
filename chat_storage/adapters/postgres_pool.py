"""PostgreSQL connection pool using psycopg2 with bounded checkout retries."""

from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock
from time import sleep
from typing import Any, Final

from psycopg2 import Error as PsycopgError
from psycopg2 import extensions
from psycopg2 import pool as psycopg2_pool

from chat_storage.adapters.dialect import SQLDialect
from chat_storage.config.logging_config import get_logger
from chat_storage.domain.exceptions import RepositoryError

DEFAULT_POOL_MIN_CONNECTIONS: Final[int] = 1
DEFAULT_POOL_MAX_CONNECTIONS: Final[int] = 25
POOL_ACQUIRE_MAX_ATTEMPTS_DEFAULT: Final[int] = 5
POOL_ACQUIRE_BASE_DELAY_SECONDS: Final[float] = 0.1
POOL_ACQUIRE_MAX_DELAY_SECONDS: Final[float] = 2.0
POOL_USAGE_WARNING_THRESHOLD: Final[float] = 0.8

logger = get_logger(__name__)


class PostgresConnectionPool:
    """Thread-safe PostgreSQL pool shared by every repository call."""

    dialect = SQLDialect.POSTGRES

    def __init__(
        self,
        *,
        dsn: str | None = None,
        host: str = "localhost",
        port: int = 5432,
        database: str = "chat_storage",
        user: str = "postgres",
        password: str | None = None,
        min_connections: int = DEFAULT_POOL_MIN_CONNECTIONS,
        max_connections: int = DEFAULT_POOL_MAX_CONNECTIONS,
        statement_timeout_ms: int = 10_000,
        connect_timeout_seconds: int = 10,
        application_name: str = "chat_storage",
        ssl_mode: str | None = None,
        acquire_max_attempts: int = POOL_ACQUIRE_MAX_ATTEMPTS_DEFAULT,
    ) -> None:
        """Create the pool and validate it with a round trip."""
        self._dsn = dsn
        self._host = host
        self._port = port
        self._database = database
        self._user = user
        self._password = password
        self._statement_timeout_ms = statement_timeout_ms
        self._connect_timeout_seconds = connect_timeout_seconds
        self._application_name = application_name
        self._ssl_mode = ssl_mode
        self._pool_min_connections = min_connections
        self._pool_max_connections = max_connections

        self._pool_acquire_max_attempts = acquire_max_attempts
        self._pool_acquire_base_delay_seconds = POOL_ACQUIRE_BASE_DELAY_SECONDS
        self._pool_acquire_max_delay_seconds = POOL_ACQUIRE_MAX_DELAY_SECONDS
        self._pool_usage_warning_threshold = POOL_USAGE_WARNING_THRESHOLD
        self._pool_in_use_count = 0
        self._pool_high_watermark = 0
        self._pool_usage_warning_emitted = False
        self._pool_lock = Lock()

        if self._pool_min_connections <= 0:
            raise RepositoryError("postgres_min_connections must be positive")
        if self._pool_max_connections < self._pool_min_connections:
            raise RepositoryError(
                "postgres_max_connections must be greater than or equal to postgres_min_connections"
            )
        if self._pool_acquire_max_attempts <= 0:
            raise RepositoryError("pool_acquire_max_attempts must be positive")

        self._pool = self._create_pool()

    def _connection_kwargs(self) -> dict[str, Any]:
        # statement_timeout bounds every call; no query can block forever
        options = " ".join(
            [
                f"-c statement_timeout={self._statement_timeout_ms}",
                f"-c application_name={self._application_name}",
            ]
        )
        conn_kwargs: dict[str, Any] = {
            "connect_timeout": self._connect_timeout_seconds,
            "options": options,
        }
        if self._dsn:
            conn_kwargs["dsn"] = self._dsn
        else:
            conn_kwargs.update(
                host=self._host,
                port=self._port,
                database=self._database,
                user=self._user,
                password=self._password,
            )
        if self._ssl_mode:
            conn_kwargs["sslmode"] = self._ssl_mode
        return conn_kwargs

    def _create_pool(self) -> psycopg2_pool.ThreadedConnectionPool:
        """Create a PostgreSQL connection pool with validation."""
        try:
            pool = psycopg2_pool.ThreadedConnectionPool(
                self._pool_min_connections,
                self._pool_max_connections,
                **self._connection_kwargs(),
            )
        except PsycopgError as exc:
            raise RepositoryError(
                f"Failed to initialize PostgreSQL pool: {exc}"
            ) from exc

        try:
            conn = pool.getconn()
            try:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                conn.rollback()
            finally:
                pool.putconn(conn)
        except PsycopgError as exc:
            pool.closeall()
            raise RepositoryError(f"PostgreSQL validation query failed: {exc}") from exc

        logger.info(
            "postgres_pool_initialized",
            host=self._host if not self._dsn else None,
            database=self._database if not self._dsn else None,
            min_connections=self._pool_min_connections,
            max_connections=self._pool_max_connections,
            statement_timeout_ms=self._statement_timeout_ms,
        )
        return pool

    def _acquire_connection_with_retry(self) -> extensions.connection:
        """Acquire a connection from the pool with exponential backoff."""
        attempt = 0
        delay = self._pool_acquire_base_delay_seconds
        while True:
            attempt += 1
            try:
                conn = self._pool.getconn()
            except psycopg2_pool.PoolError as exc:
                if attempt >= self._pool_acquire_max_attempts:
                    logger.error(
                        "postgres_pool_acquire_failed",
                        attempts=attempt,
                        max_attempts=self._pool_acquire_max_attempts,
                        max_connections=self._pool_max_connections,
                        in_use=self._pool_in_use_count,
                    )
                    raise RepositoryError(
                        "Failed to acquire PostgreSQL connection from pool"
                    ) from exc

                logger.warning(
                    "postgres_pool_exhausted_retry",
                    attempt=attempt,
                    wait_seconds=delay,
                    max_attempts=self._pool_acquire_max_attempts,
                    in_use=self._pool_in_use_count,
                )
                sleep(delay)
                delay = min(delay * 2, self._pool_acquire_max_delay_seconds)
                continue

            self._register_connection_checkout()
            return conn

    def _register_connection_checkout(self) -> None:
        """Update pool usage counters after a checkout."""
        with self._pool_lock:
            self._pool_in_use_count += 1
            if self._pool_in_use_count > self._pool_high_watermark:
                self._pool_high_watermark = self._pool_in_use_count
                logger.debug(
                    "postgres_pool_high_watermark",
                    high_watermark=self._pool_high_watermark,
                    max_connections=self._pool_max_connections,
                )

            usage_ratio = self._pool_in_use_count / self._pool_max_connections
            if (
                usage_ratio >= self._pool_usage_warning_threshold
                and not self._pool_usage_warning_emitted
            ):
                self._pool_usage_warning_emitted = True
                logger.warning(
                    "postgres_pool_usage_high",
                    in_use=self._pool_in_use_count,
                    max_connections=self._pool_max_connections,
                    threshold=self._pool_usage_warning_threshold,
                )

    def _register_connection_checkin(self) -> None:
        """Update pool usage counters after a checkin."""
        with self._pool_lock:
            if self._pool_in_use_count > 0:
                self._pool_in_use_count -= 1

            usage_ratio = self._pool_in_use_count / self._pool_max_connections
            if usage_ratio < self._pool_usage_warning_threshold:
                self._pool_usage_warning_emitted = False

    def _release_connection(
        self,
        conn: extensions.connection,
        *,
        close: bool,
        reason: str | None,
    ) -> None:
        """Return a connection to the pool and update usage metrics."""
        try:
            self._pool.putconn(conn, close=close)
        except PsycopgError:
            logger.warning(
                "postgres_putconn_failed",
                close=close,
                reason=reason,
                exc_info=True,
            )
        finally:
            self._register_connection_checkin()
            if close and reason:
                logger.warning(
                    "postgres_connection_closed",
                    reason=reason,
                    in_use=self._pool_in_use_count,
                )

    @contextmanager
    def connection(self) -> Iterator[extensions.connection]:
        """Borrow a connection from the pool and ensure cleanup."""
        conn: extensions.connection | None = None
        try:
            conn = self._acquire_connection_with_retry()
            conn.autocommit = False
            yield conn
        except PsycopgError as exc:
            if conn is not None:
                try:
                    conn.rollback()
                except PsycopgError:
                    logger.warning(
                        "postgres_connection_rollback_failed",
                        exc_info=True,
                    )
                finally:
                    self._release_connection(conn, close=True, reason="rollback_error")
                    conn = None
            raise RepositoryError(f"PostgreSQL error: {exc}") from exc
        finally:
            if conn is not None:
                try:
                    status = conn.get_transaction_status()
                    if status in (
                        extensions.TRANSACTION_STATUS_INTRANS,
                        extensions.TRANSACTION_STATUS_INERROR,
                    ):
                        conn.rollback()
                except PsycopgError:
                    logger.warning(
                        "postgres_connection_cleanup_failed",
                        exc_info=True,
                    )
                    self._release_connection(conn, close=True, reason="cleanup_error")
                else:
                    self._release_connection(conn, close=False, reason=None)

    @contextmanager
    def transaction(self) -> Iterator[extensions.connection]:
        """Run the enclosed statements as one all-or-nothing transaction."""
        with self.connection() as conn:
            yield conn
            conn.commit()

    def close(self) -> None:
        """Close all connections in the pool."""
        self._pool.closeall()
        with self._pool_lock:
            self._pool_in_use_count = 0
            self._pool_usage_warning_emitted = False
        logger.info(
            "postgres_pool_closed",
            high_watermark=self._pool_high_watermark,
        )
