"""Contacts, messages and video calls."""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from buddymate.core.errors import ValidationError
from buddymate.core.sync.coordinator import ChangeTracker, SyncCoordinator
from buddymate.domains.communication.models import (
    Contact,
    Message,
    MessageType,
    VideoCall,
)
from buddymate.domains.communication.repository import CommunicationRepository

logger = logging.getLogger(__name__)

CURRENT_USER = "current-user"

_PHONE_RE = re.compile(r"^\+?[\d\s\-().]+$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PHONE_DIGITS = 7

_CONTACT_UPDATABLE = {
    "name",
    "relationship",
    "phone_number",
    "email",
    "photo",
    "is_emergency_contact",
    "can_view_health_status",
    "last_contacted_at",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def validate_contact(contact: Contact) -> None:
    """Raises ValidationError if required fields are blank or malformed."""
    if not contact.name or not contact.name.strip():
        raise ValidationError("Name is required")
    if not contact.relationship or not contact.relationship.strip():
        raise ValidationError("Relationship is required")
    phone = contact.phone_number or ""
    if not _PHONE_RE.match(phone) or sum(ch.isdigit() for ch in phone) < MIN_PHONE_DIGITS:
        raise ValidationError(f"Invalid phone number: {phone!r}")
    if contact.email is not None and not _EMAIL_RE.match(contact.email):
        raise ValidationError(f"Invalid email address: {contact.email!r}")


def _contact_sort_key(contact: Contact) -> tuple[bool, float]:
    last = contact.last_contacted_at.timestamp() if contact.last_contacted_at else 0.0
    return (not contact.is_emergency_contact, -last)


class CommunicationService:
    """Contact book, message history and call log.

    Usage::

        service = CommunicationService(CommunicationRepository(store), sync=coordinator)
        contact = await service.add_contact(
            name="Jane", relationship="Daughter", phone_number="555-123-4567"
        )
        await service.send_message(contact.id, "Hello!")
    """

    def __init__(
        self,
        repository: CommunicationRepository,
        *,
        sync: SyncCoordinator | None = None,
        current_user_id: str = CURRENT_USER,
    ) -> None:
        self._repo = repository
        self._user_id = current_user_id
        self._contacts = ChangeTracker(sync, "contact")
        self._messages = ChangeTracker(sync, "message")
        self._calls = ChangeTracker(sync, "video_call")

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    async def get_contacts(self) -> list[Contact]:
        """Emergency contacts first, then most recently contacted."""
        return sorted(await self._repo.get_contacts(), key=_contact_sort_key)

    async def get_contact(self, contact_id: str) -> Contact | None:
        return await self._repo.get_contact(contact_id)

    async def get_emergency_contacts(self) -> list[Contact]:
        return [c for c in await self.get_contacts() if c.is_emergency_contact]

    async def save_contact(self, contact: Contact) -> Contact:
        """Insert or replace a contact by id.

        Raises:
            ValidationError: Before anything is written.
        """
        validate_contact(contact)
        existing = await self._repo.get_contact(contact.id)
        await self._repo.save_contact(contact)
        if existing is None:
            await self._contacts.created(contact)
        else:
            await self._contacts.updated(contact)
        return contact

    async def add_contact(
        self,
        *,
        name: str,
        relationship: str,
        phone_number: str,
        email: str | None = None,
        photo: str | None = None,
        is_emergency_contact: bool = False,
        can_view_health_status: bool = False,
    ) -> Contact:
        contact = Contact(
            id=str(uuid.uuid4()),
            name=name.strip() if name else name,
            relationship=relationship,
            phone_number=phone_number,
            email=email,
            photo=photo,
            is_emergency_contact=is_emergency_contact,
            can_view_health_status=can_view_health_status,
            created_at=_now(),
        )
        await self.save_contact(contact)
        logger.info("Added contact %s (emergency=%s)", contact.id, is_emergency_contact)
        return contact

    async def update_contact(self, contact_id: str, updates: dict[str, Any]) -> Contact:
        unknown = set(updates) - _CONTACT_UPDATABLE
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        contact = await self._repo.get_contact(contact_id)
        if contact is None:
            raise ValidationError(f"Contact not found: {contact_id}")
        return await self.save_contact(replace(contact, **updates))

    async def delete_contact(self, contact_id: str) -> bool:
        deleted = await self._repo.delete_contact(contact_id)
        if deleted:
            await self._contacts.deleted(contact_id)
        return deleted

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def get_messages(self, contact_id: str) -> list[Message]:
        """The conversation with one contact, oldest first."""
        messages = [
            m
            for m in await self._repo.get_messages()
            if (m.from_user_id == contact_id and m.to_user_id == self._user_id)
            or (m.from_user_id == self._user_id and m.to_user_id == contact_id)
        ]
        return sorted(messages, key=lambda m: m.sent_at)

    async def save_message(self, message: Message) -> Message:
        """Store a message; only the newest 100 are kept."""
        if not message.content or not message.content.strip():
            raise ValidationError("Message content is required")
        await self._repo.save_message(message)
        await self._messages.created(message)
        return message

    async def send_message(
        self,
        contact_id: str,
        content: str,
        message_type: MessageType = "text",
        attachment_url: str | None = None,
    ) -> Message:
        message = Message(
            id=f"msg-{uuid.uuid4().hex}",
            from_user_id=self._user_id,
            to_user_id=contact_id,
            content=content,
            type=message_type,
            sent_at=_now(),
            attachment_url=attachment_url,
        )
        await self.save_message(message)
        await self._touch_contact(contact_id)
        return message

    async def mark_message_as_read(self, message_id: str) -> Message:
        message = await self._repo.get_message(message_id)
        if message is None:
            raise ValidationError(f"Message not found: {message_id}")
        updated = replace(message, read_at=_now())
        await self._repo.save_message(updated)
        await self._messages.updated(updated)
        return updated

    async def share_wellness_status(
        self,
        contact_id: str,
        mood: int,
        energy_level: int,
        notes: str | None = None,
    ) -> Message:
        contact = await self._repo.get_contact(contact_id)
        if contact is None:
            raise ValidationError(f"Contact not found: {contact_id}")
        if not contact.can_view_health_status:
            raise ValidationError("Contact does not have permission to view health status")
        text = f"Wellness Update: Mood {mood}/5, Energy {energy_level}/5"
        if notes:
            text += f". Notes: {notes}"
        return await self.send_message(contact_id, text)

    # ------------------------------------------------------------------
    # Video calls
    # ------------------------------------------------------------------

    async def initiate_video_call(self, contact_id: str) -> VideoCall:
        if await self._repo.get_contact(contact_id) is None:
            raise ValidationError(f"Contact not found: {contact_id}")
        call = VideoCall(
            id=f"call-{uuid.uuid4().hex}",
            initiator_id=self._user_id,
            recipient_id=contact_id,
            started_at=_now(),
            status="initiated",
        )
        await self._repo.save_video_call(call)
        await self._calls.created(call)
        await self._touch_contact(contact_id)
        return call

    async def end_video_call(self, call_id: str) -> VideoCall:
        call = await self._repo.get_video_call(call_id)
        if call is None:
            raise ValidationError(f"Video call not found: {call_id}")
        ended_at = _now()
        updated = replace(
            call,
            ended_at=ended_at,
            duration=int((ended_at - call.started_at).total_seconds()),
            status="ended",
        )
        await self._repo.save_video_call(updated)
        await self._calls.updated(updated)
        return updated

    async def _touch_contact(self, contact_id: str) -> None:
        contact = await self._repo.get_contact(contact_id)
        if contact is None:
            return
        updated = replace(contact, last_contacted_at=_now())
        await self._repo.save_contact(updated)
        await self._contacts.updated(updated)
