"""Domain Value Objects"""
from pydantic import BaseModel, Field, validator
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from uuid import UUID
from typing import Optional

from domain.enums import ConflictSource


def overlaps(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Half-open interval overlap: [start_a, end_a) intersects [start_b, end_b).

    A range ending on day D and another starting on day D do not overlap,
    which is what lets a checkout and a check-in share a calendar day.
    """
    return start_a < end_b and start_b < end_a


def to_money(value) -> Decimal:
    """Round an amount to two decimal places"""
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class DateRange(BaseModel):
    """Value Object for half-open stay intervals [check_in, check_out)"""
    check_in: date
    check_out: date

    @validator('check_out')
    def check_out_after_check_in(cls, v, values):
        if 'check_in' in values and v <= values['check_in']:
            raise ValueError('Check-out must be after check-in')
        return v

    def nights(self) -> int:
        """Calculate number of nights"""
        return (self.check_out - self.check_in).days

    def each_night(self):
        """Yield every night (date) covered by the range"""
        for offset in range(self.nights()):
            yield self.check_in + timedelta(days=offset)

    def overlaps(self, other: "DateRange") -> bool:
        return overlaps(self.check_in, self.check_out, other.check_in, other.check_out)

    def covers(self, day: date) -> bool:
        """True when the night of `day` falls inside the range"""
        return overlaps(self.check_in, self.check_out, day, day + timedelta(days=1))

    class Config:
        frozen = True


class GuestInfo(BaseModel):
    """Value Object for the guest on a booking or stay"""
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None

    class Config:
        frozen = True


class IdProof(BaseModel):
    """Identity document captured at check-in"""
    type: str
    number: str
    image_url: Optional[str] = None

    class Config:
        frozen = True


class GstInfo(BaseModel):
    """Company tax details printed on the invoice"""
    gst_number: str
    company_name: Optional[str] = None
    company_address: Optional[str] = None

    class Config:
        frozen = True


class ChargeItem(BaseModel):
    """Additional charge or discount line on a stay"""
    description: str
    amount: Decimal = Field(ge=0)

    class Config:
        frozen = True


class LedgerEntry(BaseModel):
    """An external order billed against a stay"""
    order_id: str
    amount: Decimal = Field(ge=0)
    linked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    order_status: Optional[str] = None
    payment_status: Optional[str] = None

    class Config:
        frozen = True


class UnavailableOverride(BaseModel):
    """Audit record of an authorized booking on a blocked room"""
    authorized_by: str
    reason: str = "Override approved"
    authorized_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        frozen = True


class Conflict(BaseModel):
    """An existing record whose interval overlaps a candidate interval"""
    source: ConflictSource
    id: UUID
    guest_name: Optional[str] = None
    check_in: date
    check_out: date
    reason: Optional[str] = None

    class Config:
        frozen = True


class RoomRef(BaseModel):
    """A room addressed either by internal id or by (property, room number)"""
    room_id: Optional[UUID] = None
    property_id: Optional[str] = None
    room_number: Optional[str] = None

    @staticmethod
    def by_id(room_id: UUID) -> "RoomRef":
        return RoomRef(room_id=room_id)

    @staticmethod
    def by_number(property_id: str, room_number: str) -> "RoomRef":
        return RoomRef(property_id=property_id, room_number=room_number)

    @property
    def is_by_id(self) -> bool:
        return self.room_id is not None

    def describe(self) -> str:
        if self.is_by_id:
            return str(self.room_id)
        return f"{self.property_id}/{self.room_number}"

    class Config:
        frozen = True
