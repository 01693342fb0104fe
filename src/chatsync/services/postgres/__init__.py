"""
PostgreSQL service for the chat tables.
"""

from ...settings import PostgresSettings, settings
from .service import PostgresService


def get_postgres_service(postgres_settings: PostgresSettings | None = None) -> PostgresService | None:
    """
    Get PostgresService instance.

    Returns None if Postgres is disabled.
    """
    config = postgres_settings or settings.postgres
    if not config.enabled:
        return None

    return PostgresService(postgres_settings=config)


__all__ = ["PostgresService", "get_postgres_service"]
