"""
Unit tests for ManagedSubscription.
"""

import pytest

from chatsync.models.entities import SubscriptionTopic
from chatsync.services.chat.protocols import ChangeHandlers
from chatsync.services.chat.subscription import ManagedSubscription
from tests.fixtures.fakes import FakeTransport, settle


def noop(event):
    return None


@pytest.fixture
def handlers() -> ChangeHandlers:
    return ChangeHandlers(on_insert=noop, on_update=noop, on_delete=noop)


@pytest.mark.asyncio
class TestManagedSubscription:
    async def test_open_and_close(self, transport: FakeTransport, handlers, sync_settings):
        subscription = ManagedSubscription(
            transport, SubscriptionTopic.for_session("s1"), handlers, sync_settings
        )

        await subscription.open()
        assert subscription.is_live
        assert transport.live_topics() == ["social_chat_messages:session_id=s1"]

        await subscription.close()
        assert not subscription.is_live
        assert transport.live == []

    async def test_resubscribes_after_drop(self, transport: FakeTransport, handlers, sync_settings):
        topic = SubscriptionTopic.for_session("s1")
        subscription = ManagedSubscription(transport, topic, handlers, sync_settings)
        await subscription.open()

        transport.fail_subscribes = 2
        transport.drop(topic.name)
        assert not subscription.is_live

        await settle(0.2)

        assert subscription.is_live
        assert subscription.reconnects == 1
        assert transport.live_topics() == [topic.name]
        # initial subscribe + two failed attempts + success
        assert len(transport.history) == 4
        await subscription.close()

    async def test_reconnect_callback_runs_after_resubscribe(self, transport: FakeTransport, handlers, sync_settings):
        catch_ups = []

        async def catch_up():
            catch_ups.append(transport.live_topics())

        topic = SubscriptionTopic.for_session("s1")
        subscription = ManagedSubscription(transport, topic, handlers, sync_settings, on_reconnect=catch_up)
        await subscription.open()
        assert catch_ups == []

        transport.drop(topic.name)
        await settle(0.1)

        # Runs once the channel is live again
        assert catch_ups == [[topic.name]]
        await subscription.close()

    async def test_failing_reconnect_callback_keeps_subscription(
        self, transport: FakeTransport, handlers, sync_settings
    ):
        async def catch_up():
            raise RuntimeError("fetch failed")

        topic = SubscriptionTopic.for_session("s1")
        subscription = ManagedSubscription(transport, topic, handlers, sync_settings, on_reconnect=catch_up)
        await subscription.open()

        transport.drop(topic.name)
        await settle(0.1)

        assert subscription.is_live
        assert subscription.reconnects == 1
        await subscription.close()

    async def test_failed_open_retries_in_background(self, transport: FakeTransport, handlers, sync_settings):
        transport.fail_subscribes = 1
        subscription = ManagedSubscription(
            transport, SubscriptionTopic.for_user("u1"), handlers, sync_settings
        )

        await subscription.open()
        assert not subscription.is_live

        await settle()
        assert subscription.is_live
        await subscription.close()

    async def test_close_stops_retries(self, transport: FakeTransport, handlers, sync_settings):
        topic = SubscriptionTopic.for_session("s1")
        subscription = ManagedSubscription(transport, topic, handlers, sync_settings)
        await subscription.open()

        transport.drop(topic.name)
        await subscription.close()
        await settle()

        assert transport.live == []
        assert transport.history == [topic.name]

    async def test_cannot_reopen_closed_handle(self, transport: FakeTransport, handlers, sync_settings):
        subscription = ManagedSubscription(
            transport, SubscriptionTopic.for_session("s1"), handlers, sync_settings
        )
        await subscription.close()

        with pytest.raises(RuntimeError):
            await subscription.open()
