"""
Unit tests for chatsync entity models.
"""

from datetime import datetime
from uuid import UUID

import pytest
from pydantic import ValidationError

from chatsync.models.entities import (
    ChangeEvent,
    ChatMessage,
    ChatSession,
    EnrichedResource,
    Participant,
    ResourceRef,
    ResourceType,
    SessionType,
    SubscriptionTopic,
)


class TestChatSession:
    def test_direct_needs_two_users(self):
        with pytest.raises(ValidationError):
            ChatSession(
                id="s1",
                session_type=SessionType.DIRECT,
                participants=[Participant(kind="user", id="u1")],
            )

    def test_group_needs_one_group(self):
        with pytest.raises(ValidationError):
            ChatSession(
                id="s1",
                session_type=SessionType.GROUP,
                participants=[Participant(kind="user", id="u1"), Participant(kind="user", id="u2")],
            )

    def test_unread_never_negative(self):
        with pytest.raises(ValidationError):
            ChatSession(
                id="s1",
                session_type=SessionType.GROUP,
                participants=[Participant(kind="group", id="g1")],
                unread_count=-1,
            )


class TestChatMessage:
    def test_row_normalisation(self):
        message = ChatMessage.model_validate(
            {
                "id": UUID(int=1),
                "session_id": UUID(int=2),
                "sender_id": "u1",
                "content": "hi",
                "created_at": datetime(2025, 3, 1, 12, 0),
                "is_read": None,
                "unknown_column": 1,
            }
        )

        assert message.id == str(UUID(int=1))
        assert message.session_id == str(UUID(int=2))
        assert message.is_read is False
        assert message.created_at.utcoffset().total_seconds() == 0

    def test_resource_dicts_keep_their_kind(self):
        message = ChatMessage.model_validate(
            {
                "id": "m1",
                "session_id": "s1",
                "sender_id": "u1",
                "resources": [
                    {"resource_id": "n1", "resource_type": "note"},
                    {"resource_id": "d1", "resource_type": "document", "title": "Report"},
                ],
            }
        )

        bare, enriched = message.resources
        assert type(bare) is ResourceRef
        assert isinstance(enriched, EnrichedResource)
        assert message.has_unenriched_resources

    def test_is_frozen(self):
        message = ChatMessage(id="m1", session_id="s1", sender_id="u1")
        with pytest.raises(ValidationError):
            message.content = "changed"


class TestResources:
    def test_unavailable_marker(self):
        marker = EnrichedResource.unavailable(
            ResourceRef(resource_id="r1", resource_type=ResourceType.CLASS_RECORDING, message_id="m1")
        )

        assert not marker.ok
        assert marker.error == "Recording not found or access denied"
        assert marker.message_id == "m1"


class TestEvents:
    def test_record_id_from_old_image(self):
        event = ChangeEvent(event_type="DELETE", table="social_chat_messages", old={"id": UUID(int=7)})

        assert event.record_id == str(UUID(int=7))

    def test_topic_names(self):
        assert SubscriptionTopic.for_session("s1").name == "social_chat_messages:session_id=s1"
        assert SubscriptionTopic.for_user("u1").name == "social_chat_sessions:participant_id=u1"
