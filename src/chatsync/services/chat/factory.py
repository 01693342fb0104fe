"""
Wire a ChatSyncEngine against the shipped adapters.

PostgresService + ChatRepository provide data access and resource lookups,
ChatApiClient the send/edit/delete functions, S3Provider signed URLs.
The realtime transport always comes from the embedding application.
"""

from typing import Callable, Optional

from loguru import logger

from ...models.entities import Notice
from ...settings import Settings, settings
from ..api import ChatApiClient
from ..fs import S3Provider
from ..postgres import get_postgres_service
from ..repositories import ChatRepository
from .engine import ChatSyncEngine
from .protocols import RealtimeTransport


async def create_engine(
    user_id: str,
    transport: RealtimeTransport,
    *,
    app_settings: Optional[Settings] = None,
    on_notice: Optional[Callable[[Notice], None]] = None,
) -> ChatSyncEngine:
    """
    Build an engine backed by Postgres, the message API and S3 signing.

    The returned engine owns the database pool and HTTP client and
    releases them on close().
    """
    config = app_settings or settings
    db = get_postgres_service(config.postgres)
    if db is None:
        raise RuntimeError("Postgres is disabled; construct ChatSyncEngine with custom adapters")
    await db.connect()
    repository = ChatRepository(db)
    api = ChatApiClient(config.api)

    engine = ChatSyncEngine(
        user_id,
        data_source=repository,
        resolver=repository,
        signer=S3Provider(config.storage),
        sender=api,
        transport=transport,
        settings=config,
        on_notice=on_notice,
    )
    engine.add_closer(db.disconnect)
    engine.add_closer(api.close)
    logger.debug(f"Created chat sync engine for user {user_id} ({config.environment})")
    return engine
