"""
PostgresService - connection management for the chat tables.

Thin asyncpg pool wrapper used by ChatRepository:
- Connection pooling
- Row fetch helpers returning plain dicts
- Driver errors wrapped as TransientServiceError so callers handle one
  error type for every collaborator
"""

from typing import Any, Optional

import asyncpg
from loguru import logger

from ...errors import TransientServiceError
from ...settings import PostgresSettings, settings


class PostgresService:
    """PostgreSQL database service for chatsync."""

    def __init__(
        self,
        connection_string: Optional[str] = None,
        pool_min_size: Optional[int] = None,
        pool_max_size: Optional[int] = None,
        postgres_settings: Optional[PostgresSettings] = None,
    ):
        """
        Initialize PostgreSQL service.

        Args:
            connection_string: PostgreSQL connection string (defaults to settings)
            pool_min_size: Minimum pool size (defaults to settings)
            pool_max_size: Maximum pool size (defaults to settings)
            postgres_settings: Settings group to read defaults from
        """
        config = postgres_settings or settings.postgres
        self.connection_string = connection_string or config.connection_string
        self.pool_min_size = pool_min_size or config.pool_min_size
        self.pool_max_size = pool_max_size or config.pool_max_size
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Establish database connection pool."""
        if self.pool:
            return
        logger.info(
            f"Connecting to PostgreSQL with pool size {self.pool_min_size}-{self.pool_max_size}"
        )
        try:
            self.pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.pool_min_size,
                max_size=self.pool_max_size,
            )
        except (OSError, asyncpg.PostgresError) as e:
            raise TransientServiceError(f"could not connect to PostgreSQL: {e}") from e
        logger.info("PostgreSQL connection pool established")

    async def disconnect(self) -> None:
        """Close database connection pool."""
        if self.pool:
            logger.info("Closing PostgreSQL connection pool")
            await self.pool.close()
            self.pool = None
            logger.info("PostgreSQL connection pool closed")

    def _require_pool(self) -> asyncpg.Pool:
        if not self.pool:
            raise RuntimeError("PostgreSQL pool not connected. Call connect() first.")
        return self.pool

    async def fetch(self, query: str, *params: Any) -> list[dict[str, Any]]:
        """
        Execute SQL query and return all rows.

        Args:
            query: SQL query string
            *params: Positional query parameters ($1, $2, ...)

        Returns:
            List of result rows as dicts
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(query, *params)
        except (OSError, asyncpg.PostgresError) as e:
            logger.error(f"Query failed: {e}")
            raise TransientServiceError(str(e)) from e
        return [dict(row) for row in rows]

    async def fetchrow(self, query: str, *params: Any) -> Optional[dict[str, Any]]:
        """Execute SQL query and return the first row, or None."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(query, *params)
        except (OSError, asyncpg.PostgresError) as e:
            logger.error(f"Query failed: {e}")
            raise TransientServiceError(str(e)) from e
        return dict(row) if row else None

    async def execute(self, query: str, *params: Any) -> str:
        """Execute a statement and return the command status."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.execute(query, *params)
        except (OSError, asyncpg.PostgresError) as e:
            logger.error(f"Statement failed: {e}")
            raise TransientServiceError(str(e)) from e
