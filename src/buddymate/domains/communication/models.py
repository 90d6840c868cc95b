"""Records for contacts, messages and video calls."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

MessageType = Literal["text", "photo", "video", "voice"]
CallStatus = Literal["initiated", "connected", "ended", "missed"]


@dataclass
class Contact:
    """A family member, friend or caregiver."""

    id: str
    name: str
    relationship: str
    phone_number: str
    created_at: datetime
    email: str | None = None
    photo: str | None = None
    is_emergency_contact: bool = False
    can_view_health_status: bool = False
    last_contacted_at: datetime | None = None


@dataclass
class Message:
    id: str
    from_user_id: str
    to_user_id: str
    content: str
    sent_at: datetime
    type: MessageType = "text"
    read_at: datetime | None = None
    attachment_url: str | None = None


@dataclass
class VideoCall:
    id: str
    initiator_id: str
    recipient_id: str
    started_at: datetime
    status: CallStatus = "initiated"
    ended_at: datetime | None = None
    duration: int | None = None  # seconds


@dataclass
class CommunicationData:
    """The ``communication_data`` aggregate."""

    contacts: list[Contact] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    video_calls: list[VideoCall] = field(default_factory=list)
