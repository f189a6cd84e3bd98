"""Initialize chat storage: apply schema migrations and print statistics.

Usage:
    python scripts/init_chat_storage.py [--uri URI] [--json-logs]

Examples:
    python scripts/init_chat_storage.py
    python scripts/init_chat_storage.py --uri file:storages/chatstorage.db
    POSTGRES_PASSWORD=... python scripts/init_chat_storage.py --uri postgresql://chat@db/chat
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from chat_storage.bootstrap import initialize_chat_storage, initialize_logging
from chat_storage.config.logging_config import get_logger
from chat_storage.config.settings import Settings, get_settings
from chat_storage.domain.exceptions import MigrationError, RepositoryError

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Apply chat storage migrations and report row counts"
    )
    parser.add_argument(
        "--uri",
        default=None,
        help="Storage URI (postgres://..., postgresql://..., file:path or sqlite:path)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs in JSON format",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        settings = Settings(chat_storage_uri=args.uri) if args.uri else get_settings()
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1
    initialize_logging(settings, json_logs=args.json_logs or None)

    try:
        repository = initialize_chat_storage(settings)
    except MigrationError as exc:
        logger.error("schema_migration_aborted", version=exc.version, error=str(exc))
        return 1
    except (RepositoryError, ValueError) as exc:
        logger.error("chat_storage_unavailable", error=str(exc))
        return 1

    try:
        stats = repository.get_storage_statistics()
        print(f"Dialect:  {settings.dialect.value}")
        print(f"Schema:   v{repository.schema_version()}")
        print(f"Chats:    {stats.chat_count}")
        print(f"Messages: {stats.message_count}")
    finally:
        repository.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
