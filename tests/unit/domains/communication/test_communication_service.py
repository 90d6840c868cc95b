"""Tests for CommunicationService."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from buddymate.core.errors import ValidationError
from buddymate.domains.communication.repository import (
    MAX_STORED_MESSAGES,
    CommunicationRepository,
)
from buddymate.domains.communication.service import CURRENT_USER, CommunicationService


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def service(store, coordinator):
    _run(coordinator.initialize())
    return CommunicationService(CommunicationRepository(store), sync=coordinator)


def _add(service, name="Jane", **kwargs):
    kwargs.setdefault("relationship", "Daughter")
    kwargs.setdefault("phone_number", "555-123-4567")
    return _run(service.add_contact(name=name, **kwargs))


class TestContacts:
    def test_add_contact_queues_create(self, service, coordinator):
        contact = _add(service, "  Jane ")
        assert contact.name == "Jane"
        assert _run(service.get_contact(contact.id)).name == "Jane"
        ops = coordinator.get_pending_operations()
        assert [(op.type, op.entity) for op in ops] == [("CREATE", "contact")]

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"name": " "}, "Name"),
            ({"relationship": ""}, "Relationship"),
            ({"phone_number": "12"}, "phone"),
            ({"phone_number": "call me"}, "phone"),
            ({"email": "not-an-email"}, "email"),
        ],
    )
    def test_invalid_contact_not_saved(self, service, coordinator, kwargs, message):
        with pytest.raises(ValidationError, match=message):
            _add(service, **kwargs)
        assert _run(service.get_contacts()) == []
        assert coordinator.get_pending_operations() == []

    def test_emergency_contacts_sorted_first(self, service):
        _add(service, "Friend")
        _add(service, "Nurse", is_emergency_contact=True)
        names = [c.name for c in _run(service.get_contacts())]
        assert names == ["Nurse", "Friend"]
        assert [c.name for c in _run(service.get_emergency_contacts())] == ["Nurse"]

    def test_recently_contacted_sorted_before_others(self, service):
        earlier = datetime.now(timezone.utc) - timedelta(days=2)
        a = _add(service, "Ann")
        b = _add(service, "Bob")
        _run(service.update_contact(a.id, {"last_contacted_at": earlier}))
        _run(service.update_contact(b.id, {"last_contacted_at": earlier + timedelta(days=1)}))
        assert [c.name for c in _run(service.get_contacts())] == ["Bob", "Ann"]

    def test_update_contact(self, service, coordinator):
        contact = _add(service)
        updated = _run(service.update_contact(contact.id, {"phone_number": "555-987-6543"}))
        assert updated.phone_number == "555-987-6543"
        assert coordinator.get_pending_operations()[-1].type == "UPDATE"

    def test_update_unknown_field(self, service):
        contact = _add(service)
        with pytest.raises(ValidationError, match="id"):
            _run(service.update_contact(contact.id, {"id": "other"}))

    def test_update_missing_contact(self, service):
        with pytest.raises(ValidationError, match="not found"):
            _run(service.update_contact("nope", {"name": "X"}))

    def test_delete_contact(self, service, coordinator):
        contact = _add(service)
        assert _run(service.delete_contact(contact.id)) is True
        assert _run(service.delete_contact(contact.id)) is False
        assert coordinator.get_pending_operations()[-1].type == "DELETE"


class TestMessages:
    def test_send_message_touches_contact(self, service):
        contact = _add(service)
        message = _run(service.send_message(contact.id, "Hello!"))

        assert message.from_user_id == CURRENT_USER
        assert message.type == "text"
        assert [m.id for m in _run(service.get_messages(contact.id))] == [message.id]
        assert _run(service.get_contact(contact.id)).last_contacted_at is not None

    def test_blank_message_rejected(self, service):
        contact = _add(service)
        with pytest.raises(ValidationError):
            _run(service.send_message(contact.id, "   "))

    def test_conversation_only_includes_that_contact(self, service):
        jane = _add(service, "Jane")
        bob = _add(service, "Bob")
        _run(service.send_message(jane.id, "Hi Jane"))
        _run(service.send_message(bob.id, "Hi Bob"))
        assert [m.content for m in _run(service.get_messages(jane.id))] == ["Hi Jane"]

    def test_mark_as_read(self, service):
        contact = _add(service)
        message = _run(service.send_message(contact.id, "Hello"))
        read = _run(service.mark_message_as_read(message.id))
        assert read.read_at is not None
        with pytest.raises(ValidationError):
            _run(service.mark_message_as_read("missing"))

    def test_only_newest_messages_kept(self, service, store):
        contact = _add(service)
        for n in range(MAX_STORED_MESSAGES + 5):
            _run(service.send_message(contact.id, f"message {n}"))
        messages = _run(CommunicationRepository(store).get_messages())
        assert len(messages) == MAX_STORED_MESSAGES
        assert messages[0].content == "message 5"

    def test_wellness_requires_permission(self, service):
        contact = _add(service)
        with pytest.raises(ValidationError, match="permission"):
            _run(service.share_wellness_status(contact.id, 4, 3))

    def test_wellness_message_text(self, service):
        contact = _add(service, can_view_health_status=True)
        message = _run(service.share_wellness_status(contact.id, 4, 3, notes="Feeling good"))
        assert message.content == "Wellness Update: Mood 4/5, Energy 3/5. Notes: Feeling good"


class TestVideoCalls:
    def test_call_lifecycle(self, service):
        contact = _add(service)
        call = _run(service.initiate_video_call(contact.id))
        assert call.status == "initiated"

        ended = _run(service.end_video_call(call.id))
        assert ended.status == "ended"
        assert ended.duration >= 0
        assert ended.ended_at is not None

    def test_call_unknown_contact(self, service):
        with pytest.raises(ValidationError, match="Contact not found"):
            _run(service.initiate_video_call("nope"))

    def test_end_unknown_call(self, service):
        with pytest.raises(ValidationError, match="Video call not found"):
            _run(service.end_video_call("nope"))
