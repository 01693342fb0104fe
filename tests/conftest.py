"""
Pytest configuration and fixtures for chatsync tests.
"""

import pytest

from chatsync.services.chat import ChatSyncEngine
from chatsync.settings import Settings, StorageSettings, SyncSettings
from tests.fixtures.fakes import FakeDataSource, FakeResolver, FakeSender, FakeSigner, FakeTransport

USER_ID = "u1"
OTHER_ID = "u2"


@pytest.fixture
def sync_settings() -> SyncSettings:
    """Short timings so debounce and backoff paths run quickly."""
    return SyncSettings(
        ingest_debounce_ms=10,
        session_refresh_debounce_ms=10,
        resubscribe_initial_delay=0.01,
        resubscribe_max_delay=0.04,
        resubscribe_backoff=2.0,
        preview_length=20,
    )


@pytest.fixture
def storage_settings() -> StorageSettings:
    return StorageSettings(default_bucket="documents", document_url_ttl=3600, recording_url_ttl=7200)


@pytest.fixture
def app_settings(sync_settings: SyncSettings, storage_settings: StorageSettings) -> Settings:
    return Settings(sync=sync_settings, storage=storage_settings)


@pytest.fixture
def data_source() -> FakeDataSource:
    return FakeDataSource()


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def sender(data_source: FakeDataSource) -> FakeSender:
    return FakeSender(data_source)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def notices() -> list:
    return []


@pytest.fixture
def engine(data_source, resolver, signer, sender, transport, app_settings, notices) -> ChatSyncEngine:
    """Engine wired to the in-memory fakes (not started)."""
    return ChatSyncEngine(
        USER_ID,
        data_source=data_source,
        resolver=resolver,
        signer=signer,
        sender=sender,
        transport=transport,
        settings=app_settings,
        on_notice=notices.append,
    )
