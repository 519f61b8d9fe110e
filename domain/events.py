"""Domain Events consumed by notification delivery"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class EventType(str, Enum):
    GUEST_CHECKED_IN = "GUEST_CHECKED_IN"
    GUEST_CHECKED_OUT = "GUEST_CHECKED_OUT"


class StayEvent(BaseModel):
    """Guest checked in / out notification payload"""
    event_id: UUID = Field(default_factory=uuid4)
    event_type: EventType
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: str

    stay_id: UUID
    property_id: str
    room_number: str
    guest_name: str
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    actor: str = "SYSTEM"

    class Config:
        frozen = True

    @staticmethod
    def for_stay(event_type: EventType, stay, source: str, actor: str) -> "StayEvent":
        return StayEvent(
            event_type=event_type,
            source=source,
            stay_id=stay.stay_id,
            property_id=stay.property_id,
            room_number=stay.room_number,
            guest_name=stay.guest.name,
            guest_phone=stay.guest.phone,
            guest_email=stay.guest.email,
            actor=actor
        )
