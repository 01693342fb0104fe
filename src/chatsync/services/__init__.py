"""
chatsync Services

Service layer for chat synchronization:
- ChatSyncEngine: client-side sync engine (sessions, timeline, read state)
- ChatRepository: Postgres-backed data source and resource resolver
- ChatApiClient: send/edit/delete message functions over HTTP
- S3Provider: signed URLs for private storage objects
"""

from .api import ChatApiClient
from .chat import ChatSyncEngine, create_engine
from .fs import S3Provider
from .postgres import PostgresService
from .repositories import ChatRepository

__all__ = [
    "ChatApiClient",
    "ChatRepository",
    "ChatSyncEngine",
    "PostgresService",
    "S3Provider",
    "create_engine",
]
