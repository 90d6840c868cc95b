"""MCP tools for contacts, messages and video calls."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, get_args

from fastmcp import Context, FastMCP

from buddymate.core.errors import ValidationError
from buddymate.core.server.responses import error, ok
from buddymate.domains.communication.models import MessageType

if TYPE_CHECKING:
    from buddymate.domains.communication.service import CommunicationService

logger = logging.getLogger(__name__)


def register_communication_tools(mcp: FastMCP, communication: CommunicationService) -> None:
    """Register contact book, messaging and call tools on the MCP server."""

    @mcp.tool
    async def list_contacts(ctx: Context, emergency_only: bool = False) -> str:
        """List contacts, emergency contacts first, then most recently contacted.

        Args:
            emergency_only: Only return emergency contacts.
        """
        if emergency_only:
            contacts = await communication.get_emergency_contacts()
        else:
            contacts = await communication.get_contacts()
        return ok(count=len(contacts), contacts=contacts)

    @mcp.tool
    async def add_contact(
        ctx: Context,
        name: str,
        relationship: str,
        phone_number: str,
        email: str = "",
        is_emergency_contact: bool = False,
        can_view_health_status: bool = False,
    ) -> str:
        """Add a contact to the contact book.

        Args:
            name: Display name.
            relationship: Relationship to the user (e.g., 'Daughter').
            phone_number: Phone number with at least 7 digits.
            email: Optional email address.
            is_emergency_contact: Whether to alert this contact in an emergency.
            can_view_health_status: Whether wellness updates may be shared with them.
        """
        try:
            contact = await communication.add_contact(
                name=name,
                relationship=relationship,
                phone_number=phone_number,
                email=email or None,
                is_emergency_contact=is_emergency_contact,
                can_view_health_status=can_view_health_status,
            )
        except ValidationError as exc:
            return error(str(exc))
        return ok(contact=contact)

    @mcp.tool
    async def update_contact(
        ctx: Context,
        contact_id: str,
        name: str = "",
        relationship: str = "",
        phone_number: str = "",
        email: str = "",
        is_emergency_contact: bool | None = None,
        can_view_health_status: bool | None = None,
    ) -> str:
        """Change fields of a contact. Empty arguments are left as they are.

        Args:
            contact_id: Contact to change.
            name: New display name.
            relationship: New relationship.
            phone_number: New phone number.
            email: New email address.
            is_emergency_contact: Mark or unmark as an emergency contact.
            can_view_health_status: Allow or deny wellness updates.
        """
        updates: dict = {
            field: value
            for field, value in (
                ("name", name),
                ("relationship", relationship),
                ("phone_number", phone_number),
                ("email", email),
            )
            if value
        }
        for field, flag in (
            ("is_emergency_contact", is_emergency_contact),
            ("can_view_health_status", can_view_health_status),
        ):
            if flag is not None:
                updates[field] = flag
        try:
            contact = await communication.update_contact(contact_id, updates)
        except ValidationError as exc:
            return error(str(exc))
        return ok(contact=contact)

    @mcp.tool
    async def delete_contact(ctx: Context, contact_id: str) -> str:
        """Remove a contact. Message history is kept.

        Args:
            contact_id: Contact to remove.
        """
        if not await communication.delete_contact(contact_id):
            return error(f"Contact not found: {contact_id}")
        return ok(deleted=contact_id)

    @mcp.tool
    async def get_conversation(ctx: Context, contact_id: str) -> str:
        """Messages exchanged with one contact, oldest first.

        Args:
            contact_id: The other side of the conversation.
        """
        messages = await communication.get_messages(contact_id)
        return ok(count=len(messages), messages=messages)

    @mcp.tool
    async def send_message(ctx: Context, contact_id: str, content: str, message_type: str = "text") -> str:
        """Send a message to a contact. Only the newest 100 messages are kept.

        Args:
            contact_id: Recipient.
            content: Message text.
            message_type: 'text', 'photo', 'video' or 'voice'.
        """
        if message_type not in get_args(MessageType):
            return error(f"Unknown message type {message_type!r}")
        try:
            message = await communication.send_message(contact_id, content, message_type)  # type: ignore[arg-type]
        except ValidationError as exc:
            return error(str(exc))
        return ok(message=message)

    @mcp.tool
    async def mark_message_read(ctx: Context, message_id: str) -> str:
        """Mark a message as read.

        Args:
            message_id: Message to mark.
        """
        try:
            message = await communication.mark_message_as_read(message_id)
        except ValidationError as exc:
            return error(str(exc))
        return ok(message=message)

    @mcp.tool
    async def share_wellness_status(
        ctx: Context, contact_id: str, mood: int, energy_level: int, notes: str = ""
    ) -> str:
        """Send a wellness update to a contact allowed to see health status.

        Args:
            contact_id: Recipient; must have can_view_health_status set.
            mood: Mood from 1 to 5.
            energy_level: Energy from 1 to 5.
            notes: Optional notes to include.
        """
        try:
            message = await communication.share_wellness_status(
                contact_id, mood, energy_level, notes or None
            )
        except ValidationError as exc:
            return error(str(exc))
        return ok(message=message)

    @mcp.tool
    async def start_video_call(ctx: Context, contact_id: str) -> str:
        """Record the start of a video call with a contact.

        Args:
            contact_id: Who is being called.
        """
        try:
            call = await communication.initiate_video_call(contact_id)
        except ValidationError as exc:
            return error(str(exc))
        return ok(call=call)

    @mcp.tool
    async def end_video_call(ctx: Context, call_id: str) -> str:
        """Record the end of a video call and its duration in seconds.

        Args:
            call_id: Call returned by start_video_call.
        """
        try:
            call = await communication.end_video_call(call_id)
        except ValidationError as exc:
            return error(str(exc))
        return ok(call=call)
