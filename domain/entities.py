"""Domain Entities - Aggregates"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from datetime import datetime, date, timedelta, timezone
from typing import Optional, List
from decimal import Decimal

from domain.enums import (
    RoomStatus, BookingStatus, StayStatus, BookingSource, PaymentMode, OrderPaymentStatus
)
from domain.errors import (
    ValidationError, RoomUnavailable, BookingNotConfirmed, StayNotActive, OrderAlreadyLinked
)
from domain.billing import compute_invoice
from domain.value_objects import (
    DateRange, GuestInfo, IdProof, GstInfo, ChargeItem, LedgerEntry, UnavailableOverride, to_money
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# Statuses that block new bookings unless an authorized override is supplied
BLOCKED_ROOM_STATUSES = (RoomStatus.MAINTENANCE, RoomStatus.OUT_OF_SERVICE)

# Statuses housekeeping may set by hand
MANUAL_ROOM_STATUSES = (
    RoomStatus.AVAILABLE, RoomStatus.CLEANING, RoomStatus.MAINTENANCE, RoomStatus.OUT_OF_SERVICE
)


class Room(BaseModel):
    """Room Aggregate Root Entity"""

    # Identity
    room_id: UUID = Field(default_factory=uuid4)
    property_id: str
    room_number: str

    # Attributes
    room_type: str = "standard"
    floor: str = "Ground"
    capacity: int = Field(ge=1, default=2)
    tariff: Decimal = Field(ge=0, default=Decimal("0"))
    amenities: List[str] = []

    # Lifecycle
    status: RoomStatus = RoomStatus.AVAILABLE
    active_stay_id: Optional[UUID] = None
    reserved_booking_id: Optional[UUID] = None

    # Metadata
    created_at: datetime = Field(default_factory=_now)
    modified_at: datetime = Field(default_factory=_now)
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== QUERY METHODS ====================
    def is_blocked(self) -> bool:
        """Check if room is in maintenance or out of service"""
        return self.status in BLOCKED_ROOM_STATUSES

    def is_held_by_other_stay(self, stay_id: Optional[UUID] = None) -> bool:
        """Check if another stay currently occupies the room"""
        return self.active_stay_id is not None and self.active_stay_id != stay_id

    # ==================== STATE TRANSITION METHODS ====================
    def mark_reserved(self, booking_id: UUID) -> bool:
        """Hold an available room for a booking arriving today"""
        if self.status != RoomStatus.AVAILABLE:
            return False

        self.status = RoomStatus.RESERVED
        self.reserved_booking_id = booking_id
        self._touch()
        return True

    def clear_reservation(self, booking_id: UUID) -> bool:
        """Revert RESERVED to AVAILABLE if this booking put it there"""
        if self.status != RoomStatus.RESERVED or self.reserved_booking_id != booking_id:
            return False

        self.status = RoomStatus.AVAILABLE
        self.reserved_booking_id = None
        self._touch()
        return True

    def occupy(self, stay_id: UUID) -> None:
        """Mark room occupied by a stay"""
        # A room never goes OCCUPIED -> OCCUPIED across two stays
        if self.is_held_by_other_stay(stay_id):
            raise RoomUnavailable(
                self.room_number,
                self.status.value,
                f"Room {self.room_number} is still occupied by stay {self.active_stay_id}; "
                f"check that guest out first"
            )

        self.status = RoomStatus.OCCUPIED
        self.active_stay_id = stay_id
        self.reserved_booking_id = None
        self._touch()

    def release(self, stay_id: UUID) -> bool:
        """Release room after checkout; it goes to cleaning"""
        if self.active_stay_id != stay_id:
            return False

        self.status = RoomStatus.CLEANING
        self.active_stay_id = None
        self._touch()
        return True

    def set_status(self, status: RoomStatus) -> None:
        """Housekeeping status change"""
        if status not in MANUAL_ROOM_STATUSES:
            raise ValidationError(
                f"Room status {status.value} can only be set by a booking or check-in"
            )
        if self.active_stay_id is not None:
            raise ValidationError(
                f"Room {self.room_number} is occupied by stay {self.active_stay_id}"
            )

        self.status = status
        self.reserved_booking_id = None
        self._touch()

    def _touch(self) -> None:
        self.modified_at = _now()
        self.version += 1


class MaintenanceSchedule(BaseModel):
    """Date-specific maintenance block on a room"""

    maintenance_id: UUID = Field(default_factory=uuid4)
    property_id: str
    room_id: UUID
    room_number: str

    # Inclusive dates, as entered by operations staff
    start_date: date
    end_date: date
    reason: str = "Maintenance required"
    active: bool = True

    created_by: str = "SYSTEM"
    created_at: datetime = Field(default_factory=_now)
    modified_at: datetime = Field(default_factory=_now)
    version: int = 1

    class Config:
        from_attributes = True

    @property
    def blocked_range(self) -> DateRange:
        """Half-open range of nights blocked by this schedule"""
        return DateRange(check_in=self.start_date, check_out=self.end_date + timedelta(days=1))

    def covers(self, day: date) -> bool:
        return self.active and self.blocked_range.covers(day)

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self.modified_at = _now()
            self.version += 1


class Booking(BaseModel):
    """Booking Aggregate Root Entity"""

    # Identity
    booking_id: UUID = Field(default_factory=uuid4)

    # Room reference (both forms kept, rooms are looked up by either)
    property_id: str
    room_id: UUID
    room_number: str

    # Value Objects
    guest: GuestInfo
    date_range: DateRange
    guest_count: int = Field(ge=1, default=1)
    estimated_tariff: Decimal = Field(ge=0)

    special_requests: Optional[str] = None
    booking_source: BookingSource = BookingSource.FRONT_DESK
    status: BookingStatus = BookingStatus.CONFIRMED
    unavailable_override: Optional[UnavailableOverride] = None

    # Cancellation / conversion
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    stay_id: Optional[UUID] = None

    # Metadata
    created_at: datetime = Field(default_factory=_now)
    modified_at: datetime = Field(default_factory=_now)
    created_by: str = "SYSTEM"
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== DERIVED VALUES ====================
    @property
    def stay_duration(self) -> int:
        return max(1, self.date_range.nights())

    @property
    def total_estimate(self) -> Decimal:
        return to_money(self.estimated_tariff * self.stay_duration)

    def is_active(self) -> bool:
        """Confirmed or checked-in bookings hold the room"""
        return self.status in (BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN)

    # ==================== STATE TRANSITION METHODS ====================
    def cancel(self, reason: str, cancelled_by: str) -> bool:
        """Cancel booking; returns False when it was already cancelled"""
        if self.status == BookingStatus.CANCELLED:
            return False
        if self.status != BookingStatus.CONFIRMED:
            raise BookingNotConfirmed(self.booking_id, self.status.value, action="cancel")

        self.status = BookingStatus.CANCELLED
        self.cancellation_reason = reason
        self.cancelled_at = _now()
        self.cancelled_by = cancelled_by
        self._touch()
        return True

    def mark_checked_in(self, stay_id: UUID) -> None:
        """Record conversion into a stay"""
        if self.status != BookingStatus.CONFIRMED:
            raise BookingNotConfirmed(self.booking_id, self.status.value)

        self.status = BookingStatus.CHECKED_IN
        self.stay_id = stay_id
        self._touch()

    def revert_check_in(self, stay_id: UUID) -> bool:
        """Undo mark_checked_in when the room could not be occupied"""
        if self.status != BookingStatus.CHECKED_IN or self.stay_id != stay_id:
            return False

        self.status = BookingStatus.CONFIRMED
        self.stay_id = None
        self._touch()
        return True

    def _touch(self) -> None:
        self.modified_at = _now()
        self.version += 1


class Stay(BaseModel):
    """Stay (check-in record) Aggregate Root Entity"""

    # Identity
    stay_id: UUID = Field(default_factory=uuid4)

    property_id: str
    room_id: UUID
    room_number: str

    guest: GuestInfo
    date_range: DateRange
    guest_count: int = Field(ge=1, default=1)
    room_tariff: Decimal = Field(ge=0)

    # Charge sources; money totals are always derived from these
    ledger: List[LedgerEntry] = []
    additional_charges: List[ChargeItem] = []
    discounts: List[ChargeItem] = []
    advance_payment: Decimal = Field(ge=0, default=Decimal("0"))
    payment_mode: PaymentMode = PaymentMode.CASH
    final_payment: Decimal = Field(ge=0, default=Decimal("0"))
    final_payment_mode: Optional[PaymentMode] = None

    id_proof: Optional[IdProof] = None
    gst_info: Optional[GstInfo] = None
    special_requests: Optional[str] = None
    booking_id: Optional[UUID] = None
    unavailable_override: Optional[UnavailableOverride] = None

    status: StayStatus = StayStatus.CHECKED_IN
    billing_complete: bool = False
    checkout_notes: Optional[str] = None

    checked_in_by: str = "SYSTEM"
    checked_out_by: Optional[str] = None
    checked_in_at: datetime = Field(default_factory=_now)
    checked_out_at: Optional[datetime] = None
    modified_at: datetime = Field(default_factory=_now)
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== FACTORY METHODS ====================
    @staticmethod
    def from_booking(
        booking: Booking,
        advance_payment: Decimal,
        payment_mode: PaymentMode,
        id_proof: Optional[IdProof] = None,
        checked_in_by: str = "SYSTEM",
        gst_info: Optional[GstInfo] = None
    ) -> "Stay":
        """Seed a stay from a confirmed booking"""
        if booking.status != BookingStatus.CONFIRMED:
            raise BookingNotConfirmed(booking.booking_id, booking.status.value)

        return Stay(
            property_id=booking.property_id,
            room_id=booking.room_id,
            room_number=booking.room_number,
            guest=booking.guest,
            date_range=booking.date_range,
            guest_count=booking.guest_count,
            room_tariff=booking.estimated_tariff,
            advance_payment=to_money(advance_payment),
            payment_mode=payment_mode,
            id_proof=id_proof,
            gst_info=gst_info,
            special_requests=booking.special_requests,
            booking_id=booking.booking_id,
            unavailable_override=booking.unavailable_override,
            checked_in_by=checked_in_by
        )

    # ==================== DERIVED VALUES ====================
    @property
    def stay_duration(self) -> int:
        return max(1, self.date_range.nights())

    def is_active(self) -> bool:
        return self.status == StayStatus.CHECKED_IN

    def has_order(self, order_id: str) -> bool:
        return any(entry.order_id == order_id for entry in self.ledger)

    # ==================== MODIFICATION METHODS ====================
    def link_order(self, entry: LedgerEntry) -> None:
        """Append an order to the ledger; an order id appears at most once"""
        if not self.is_active():
            raise StayNotActive(self.stay_id)
        if self.has_order(entry.order_id):
            raise OrderAlreadyLinked(entry.order_id, self.stay_id)

        self.ledger = [*self.ledger, entry]
        self._touch()

    def update_details(
        self,
        guest: Optional[GuestInfo] = None,
        guest_count: Optional[int] = None,
        id_proof: Optional[IdProof] = None,
        gst_info: Optional[GstInfo] = None,
        special_requests: Optional[str] = None
    ) -> bool:
        """Correct guest-facing details of an active stay

        Dates, tariff, payments, ledger and status are not editable here.
        """
        if not self.is_active():
            raise StayNotActive(self.stay_id)
        if guest is not None and (not guest.name or not guest.name.strip()):
            raise ValidationError("Guest name is required")
        if guest_count is not None and guest_count < 1:
            raise ValidationError("Guest count must be at least 1")

        changes = {
            "guest": guest,
            "guest_count": guest_count,
            "id_proof": id_proof,
            "gst_info": gst_info,
            "special_requests": special_requests,
        }
        changed = False
        for name, value in changes.items():
            if value is not None and getattr(self, name) != value:
                setattr(self, name, value)
                changed = True
        if changed:
            self._touch()
        return changed

    def check_out(
        self,
        final_payment: Decimal,
        payment_mode: PaymentMode,
        discounts: List[ChargeItem],
        additional_charges: List[ChargeItem],
        notes: Optional[str],
        checked_out_by: str
    ) -> None:
        """Close the stay and settle billing_complete from the recomputed invoice"""
        if not self.is_active():
            raise StayNotActive(self.stay_id)

        self.final_payment = to_money(final_payment)
        self.final_payment_mode = payment_mode
        self.discounts = [*self.discounts, *discounts]
        self.additional_charges = [*self.additional_charges, *additional_charges]
        self.checkout_notes = notes
        self.checked_out_by = checked_out_by
        self.checked_out_at = _now()
        self.status = StayStatus.CHECKED_OUT
        self.billing_complete = compute_invoice(self).balance <= 0
        self._touch()

    def _touch(self) -> None:
        self.modified_at = _now()
        self.version += 1


class Guest(BaseModel):
    """Guest directory record, one per returning guest of a property"""

    guest_id: UUID = Field(default_factory=uuid4)
    property_id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    id_proof: Optional[IdProof] = None
    gst_info: Optional[GstInfo] = None

    visit_count: int = 0
    last_stay_id: Optional[UUID] = None
    last_visit_at: Optional[datetime] = None

    created_by: str = "SYSTEM"
    created_at: datetime = Field(default_factory=_now)
    modified_at: datetime = Field(default_factory=_now)
    version: int = 1

    class Config:
        from_attributes = True

    def matches(self, guest: GuestInfo) -> bool:
        """Same person: same phone, or same name when neither record has a phone"""
        if guest.phone:
            return self.phone == guest.phone
        return self.phone is None and self.name.strip().lower() == guest.name.strip().lower()

    def record_visit(self, stay: "Stay") -> None:
        """Refresh contact details from the stay and count the visit"""
        self.name = stay.guest.name
        self.phone = stay.guest.phone or self.phone
        self.email = stay.guest.email or self.email
        self.id_proof = stay.id_proof or self.id_proof
        self.gst_info = stay.gst_info or self.gst_info
        if self.last_stay_id != stay.stay_id:
            self.visit_count += 1
            self.last_stay_id = stay.stay_id
            self.last_visit_at = stay.checked_in_at
        self.modified_at = _now()
        self.version += 1


class Order(BaseModel):
    """External order as seen by the engine (owned by the point-of-sale system)"""

    order_id: str
    property_id: Optional[str] = None
    amount: Optional[Decimal] = Field(None, ge=0)
    status: str = "pending"
    payment_status: OrderPaymentStatus = OrderPaymentStatus.PENDING

    # Flags written back by the engine
    linked_to_stay_id: Optional[UUID] = None
    linked_at: Optional[datetime] = None
    billed_via_stay_id: Optional[UUID] = None
    billed_at: Optional[datetime] = None
    paid_via: Optional[str] = None

    version: int = 1

    class Config:
        from_attributes = True

    @property
    def is_billed(self) -> bool:
        return self.billed_via_stay_id is not None
