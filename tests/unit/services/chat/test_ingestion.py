"""
Unit tests for batched realtime ingestion.

Tests cover:
1. DebounceTimer restart/cancel semantics
2. MessageHydrator side-row grouping and enrichment
3. IngestionBatcher coalescing bursts into one fetch cycle
4. Discarding work after close
"""

import asyncio

import pytest

from chatsync.models.entities import EnrichedResource, MediaRef, ResourceType
from chatsync.services.chat.enricher import ResourceEnricher
from chatsync.services.chat.ingestion import DebounceTimer, IngestionBatcher, MessageHydrator
from tests.fixtures.fakes import FakeDataSource, FakeResolver, make_message, settle


@pytest.fixture
def hydrator(data_source, resolver, signer, storage_settings) -> MessageHydrator:
    return MessageHydrator(data_source, ResourceEnricher(resolver, signer, storage_settings))


@pytest.mark.asyncio
class TestDebounceTimer:
    async def test_restart_delays_callback(self):
        fired = []

        async def callback():
            fired.append(asyncio.get_running_loop().time())

        timer = DebounceTimer(0.05, callback)
        timer.restart()
        await asyncio.sleep(0.03)
        timer.restart()
        await asyncio.sleep(0.03)
        assert fired == []

        await settle(0.08)
        assert len(fired) == 1
        assert not timer.pending

    async def test_cancel(self):
        fired = []

        async def callback():
            fired.append(True)

        timer = DebounceTimer(0.01, callback)
        timer.restart()
        timer.cancel()
        await settle(0.03)

        assert fired == []


@pytest.mark.asyncio
class TestMessageHydrator:
    async def test_hydrate_groups_side_rows(self, hydrator, data_source: FakeDataSource, resolver: FakeResolver):
        data_source.add_messages(make_message("m1", at=1), make_message("m2", at=2))
        data_source.media.append(
            MediaRef(message_id="m1", type="image", url="https://cdn.test/a.png", filename="a.png")
        )
        resolver.add(ResourceType.POST, "p1", content="hi all")
        data_source.add_link("m2", ResourceType.POST, "p1")

        messages = await hydrator.fetch_batch(["m1", "m2"])

        by_id = {m.id: m for m in messages}
        assert [m.filename for m in by_id["m1"].media] == ["a.png"]
        assert by_id["m1"].resources == []
        assert isinstance(by_id["m2"].resources[0], EnrichedResource)
        assert by_id["m2"].resources[0].preview_content == "hi all"

    async def test_fetch_batch_dedupes_and_skips_empty(self, hydrator, data_source: FakeDataSource):
        assert await hydrator.fetch_batch([]) == []
        assert data_source.calls == []

        data_source.add_messages(make_message("m1"))
        await hydrator.fetch_batch(["m1", "m1"])

        assert data_source.calls_to("fetch_messages_batch") == [["m1"]]

    async def test_enrich_message_keeps_order(self, hydrator, resolver: FakeResolver):
        resolver.add(ResourceType.POST, "p1", content="one")
        enriched = EnrichedResource(resource_id="p0", resource_type=ResourceType.POST, title="cached")
        message = make_message(
            "m1",
            resources=[
                enriched,
                {"resource_id": "p1", "resource_type": "post"},
            ],
        )

        result = await hydrator.enrich_message(message)

        assert [r.resource_id for r in result.resources] == ["p0", "p1"]
        assert result.resources[0] is enriched
        assert result.resources[1].message_id == "m1"
        assert resolver.calls == [(ResourceType.POST, "p1")]


@pytest.mark.asyncio
class TestIngestionBatcher:
    """Bursts of realtime inserts collapse into one fetch cycle."""

    async def test_burst_is_fetched_once(self, hydrator, data_source: FakeDataSource):
        data_source.add_messages(*(make_message(f"m{i}", at=i) for i in range(5)))
        batches = []
        batcher = IngestionBatcher("s1", hydrator, on_batch=batches.append, debounce=0.05)

        for i in range(5):
            batcher.notify(f"m{i}")
            await asyncio.sleep(0.005)
        await settle(0.1)

        assert len(batches) == 1
        assert sorted(m.id for m in batches[0]) == ["m0", "m1", "m2", "m3", "m4"]
        assert data_source.calls_to("fetch_messages_batch") == [["m0", "m1", "m2", "m3", "m4"]]
        assert len(data_source.calls_to("fetch_media")) == 1
        assert len(data_source.calls_to("fetch_resource_links")) == 1

    async def test_flush_skips_debounce(self, hydrator, data_source: FakeDataSource):
        data_source.add_messages(make_message("m1"))
        batches = []
        batcher = IngestionBatcher("s1", hydrator, on_batch=batches.append, debounce=10)

        batcher.notify("m1")
        await batcher.flush()

        assert [m.id for m in batches[0]] == ["m1"]
        assert batcher.pending == set()

    async def test_close_drops_pending_ids(self, hydrator, data_source: FakeDataSource):
        data_source.add_messages(make_message("m1"))
        batches = []
        batcher = IngestionBatcher("s1", hydrator, on_batch=batches.append, debounce=0.01)

        batcher.notify("m1")
        await batcher.close()
        batcher.notify("m2")
        await settle(0.03)

        assert batches == []
        assert data_source.calls == []

    async def test_in_flight_batch_discarded_after_close(self, resolver, signer, storage_settings):
        gate = asyncio.Event()

        class SlowDataSource(FakeDataSource):
            async def fetch_messages_batch(self, ids):
                await gate.wait()
                return await super().fetch_messages_batch(ids)

        data_source = SlowDataSource()
        data_source.add_messages(make_message("m1"))
        hydrator = MessageHydrator(data_source, ResourceEnricher(resolver, signer, storage_settings))
        batches = []
        batcher = IngestionBatcher("s1", hydrator, on_batch=batches.append, debounce=0.01)

        batcher.notify("m1")
        await settle(0.03)
        await batcher.close()
        gate.set()
        await settle(0.02)

        assert batches == []

    async def test_fetch_error_reported(self, hydrator, data_source: FakeDataSource):
        data_source.failing.add("fetch_messages_batch")
        errors = []
        batcher = IngestionBatcher(
            "s1", hydrator, on_batch=lambda batch: None, debounce=0.01, on_error=errors.append
        )

        batcher.notify("m1")
        await settle(0.03)

        assert len(errors) == 1
