"""Repository for the ``communication_data`` aggregate."""

from __future__ import annotations

from buddymate.core.storage.repository import AggregateRepository
from buddymate.domains.communication.models import (
    CommunicationData,
    Contact,
    Message,
    VideoCall,
)

COMMUNICATION_DATA_KEY = "communication_data"

# Older messages are dropped so the blob stays small on device.
MAX_STORED_MESSAGES = 100


class CommunicationRepository(AggregateRepository[CommunicationData]):
    storage_key = COMMUNICATION_DATA_KEY
    aggregate_type = CommunicationData
    default_factory = CommunicationData

    # Contacts

    async def get_contacts(self) -> list[Contact]:
        return (await self.get_all()).contacts

    async def get_contact(self, contact_id: str) -> Contact | None:
        return await self.find(contact_id, collection="contacts")

    async def save_contact(self, contact: Contact) -> None:
        await self.upsert(contact, collection="contacts")

    async def delete_contact(self, contact_id: str) -> bool:
        return await self.remove(contact_id, collection="contacts")

    # Messages

    async def get_messages(self) -> list[Message]:
        return (await self.get_all()).messages

    async def get_message(self, message_id: str) -> Message | None:
        return await self.find(message_id, collection="messages")

    async def save_message(self, message: Message) -> None:
        data = await self.get_all()
        for index, existing in enumerate(data.messages):
            if existing.id == message.id:
                data.messages[index] = message
                break
        else:
            data.messages.append(message)
        data.messages = data.messages[-MAX_STORED_MESSAGES:]
        await self.save_all(data)

    # Video calls

    async def get_video_call(self, call_id: str) -> VideoCall | None:
        return await self.find(call_id, collection="video_calls")

    async def save_video_call(self, call: VideoCall) -> None:
        await self.upsert(call, collection="video_calls")
