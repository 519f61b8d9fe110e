"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID
from typing import Dict, List, Optional

from domain.enums import (
    RoomStatus, BookingStatus, StayStatus, BookingSource, PaymentMode, OrderPaymentStatus, Role
)
from domain.value_objects import GuestInfo, IdProof, GstInfo, ChargeItem, LedgerEntry, RoomRef


# ============================================================================
# SHARED SCHEMAS
# ============================================================================

class RoomRefRequest(BaseModel):
    """A room given by id, or by property id and room number"""
    room_id: Optional[UUID] = None
    property_id: Optional[str] = None
    room_number: Optional[str] = None

    def to_ref(self) -> RoomRef:
        if self.room_id is not None:
            return RoomRef.by_id(self.room_id)
        return RoomRef(property_id=self.property_id, room_number=self.room_number)


class GuestRequest(BaseModel):
    """Guest details DTO"""
    name: str = Field(min_length=1)
    phone: Optional[str] = None
    email: Optional[str] = None

    def to_guest(self) -> GuestInfo:
        return GuestInfo(name=self.name, phone=self.phone, email=self.email)


class IdProofRequest(BaseModel):
    type: str
    number: str
    image_url: Optional[str] = None

    def to_id_proof(self) -> IdProof:
        return IdProof(type=self.type, number=self.number, image_url=self.image_url)


class OverrideRequest(BaseModel):
    """Authorized override of a maintenance / out-of-service block"""
    reason: str = Field(min_length=1)


class ConflictResponse(BaseModel):
    source: str
    id: UUID
    guest_name: Optional[str] = None
    check_in: date
    check_out: date
    reason: Optional[str] = None


# ============================================================================
# ROOM SCHEMAS
# ============================================================================

class CreateRoomRequest(BaseModel):
    """Create room request DTO"""
    property_id: str
    room_number: str = Field(min_length=1)
    room_type: str = "standard"
    floor: str = "Ground"
    capacity: int = Field(ge=1, le=20, default=2)
    tariff: Decimal = Field(ge=0, default=Decimal("0"))
    amenities: List[str] = []


class BulkCreateRoomsRequest(BaseModel):
    """Bulk create rooms request DTO"""
    property_id: str
    from_number: int = Field(ge=1, le=9999)
    to_number: int = Field(ge=1, le=9999)
    room_type: str = "standard"
    floor: str = "Ground"
    capacity: int = Field(ge=1, le=20, default=2)
    tariff: Decimal = Field(ge=0, default=Decimal("0"))
    amenities: List[str] = []


class UpdateRoomStatusRequest(BaseModel):
    status: RoomStatus


class RoomResponse(BaseModel):
    """Room response DTO"""
    room_id: UUID
    property_id: str
    room_number: str
    room_type: str
    floor: str
    capacity: int
    tariff: Decimal
    amenities: List[str]
    status: str
    active_stay_id: Optional[UUID] = None
    reserved_booking_id: Optional[UUID] = None
    version: int


class BulkCreateRoomsResponse(BaseModel):
    created: List[RoomResponse]
    skipped: List[str]


class ScheduleMaintenanceRequest(BaseModel):
    start_date: date
    end_date: date
    reason: Optional[str] = None


class CancelMaintenanceRequest(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class MaintenanceResponse(BaseModel):
    maintenance_id: UUID
    room_id: UUID
    room_number: str
    start_date: date
    end_date: date
    reason: str
    active: bool
    created_by: str
    created_at: datetime


# ============================================================================
# BOOKING SCHEMAS
# ============================================================================

class CreateBookingRequest(RoomRefRequest):
    """Create booking request DTO"""
    guest: GuestRequest
    check_in: date
    check_out: date
    guest_count: int = Field(ge=1, le=20, default=1)
    tariff: Optional[Decimal] = Field(None, ge=0)
    special_requests: Optional[str] = None
    booking_source: BookingSource = Field(default=BookingSource.FRONT_DESK, description="Source of booking")
    override_unavailable: Optional[OverrideRequest] = None


class CancelBookingRequest(BaseModel):
    """Cancel booking request DTO"""
    reason: str = Field(min_length=1, default="Guest requested cancellation")


class ValidateOverlapRequest(RoomRefRequest):
    check_in: date
    check_out: date
    exclude_booking_id: Optional[UUID] = None
    include_maintenance: bool = True


class ValidateOverlapResponse(BaseModel):
    available: bool
    conflicts: List[ConflictResponse]


class BookingResponse(BaseModel):
    """Booking response DTO"""
    booking_id: UUID
    property_id: str
    room_id: UUID
    room_number: str
    guest_name: str
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    check_in: date
    check_out: date
    stay_duration: int
    guest_count: int
    estimated_tariff: Decimal
    total_estimate: Decimal
    special_requests: Optional[str] = None
    booking_source: str
    status: str
    override_authorized_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    stay_id: Optional[UUID] = None
    created_by: str
    created_at: datetime
    version: int


# ============================================================================
# STAY SCHEMAS
# ============================================================================

class ConvertBookingRequest(BaseModel):
    """Check in a confirmed booking"""
    advance_payment: Decimal = Field(ge=0, default=Decimal("0"))
    payment_mode: PaymentMode = PaymentMode.CASH
    id_proof: Optional[IdProofRequest] = None
    gst_info: Optional[GstInfo] = None


class WalkInRequest(RoomRefRequest):
    """Walk-in check-in request DTO"""
    guest: GuestRequest
    check_in: date
    check_out: date
    guest_count: int = Field(ge=1, le=20, default=1)
    room_tariff: Optional[Decimal] = Field(None, ge=0)
    advance_payment: Decimal = Field(ge=0, default=Decimal("0"))
    payment_mode: PaymentMode = PaymentMode.CASH
    id_proof: Optional[IdProofRequest] = None
    special_requests: Optional[str] = None
    override_unavailable: Optional[OverrideRequest] = None
    gst_info: Optional[GstInfo] = None


class LinkOrderRequest(BaseModel):
    order_id: str = Field(min_length=1)
    order_amount: Optional[Decimal] = Field(None, ge=0)


class CheckoutRequest(BaseModel):
    """Checkout request DTO"""
    final_payment: Decimal = Field(ge=0, default=Decimal("0"))
    payment_mode: PaymentMode = PaymentMode.CASH
    discounts: List[ChargeItem] = []
    additional_charges: List[ChargeItem] = []
    notes: Optional[str] = None


class UpdateStayRequest(BaseModel):
    """Correction of guest details; dates, tariff and status cannot be changed"""
    guest: Optional[GuestRequest] = None
    guest_count: Optional[int] = Field(None, ge=1, le=20)
    id_proof: Optional[IdProofRequest] = None
    gst_info: Optional[GstInfo] = None
    special_requests: Optional[str] = None

    class Config:
        extra = "forbid"


class StayResponse(BaseModel):
    """Stay response DTO"""
    stay_id: UUID
    property_id: str
    room_id: UUID
    room_number: str
    guest_name: str
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    check_in: date
    check_out: date
    stay_duration: int
    guest_count: int
    room_tariff: Decimal
    id_proof: Optional[IdProof] = None
    gst_info: Optional[GstInfo] = None
    special_requests: Optional[str] = None
    ledger: List[LedgerEntry]
    advance_payment: Decimal
    payment_mode: str
    final_payment: Decimal
    booking_id: Optional[UUID] = None
    status: str
    billing_complete: bool
    checked_in_by: str
    checked_in_at: datetime
    checked_out_at: Optional[datetime] = None
    version: int


# ============================================================================
# GUEST SCHEMAS
# ============================================================================

class GuestResponse(BaseModel):
    """Guest directory record DTO"""
    guest_id: UUID
    property_id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    id_proof: Optional[IdProof] = None
    gst_info: Optional[GstInfo] = None
    visit_count: int
    last_stay_id: Optional[UUID] = None
    last_visit_at: Optional[datetime] = None
    created_at: datetime


# ============================================================================
# ORDER SCHEMAS
# ============================================================================

class RegisterOrderRequest(BaseModel):
    """Order mirrored from the point-of-sale system"""
    order_id: str = Field(min_length=1)
    property_id: Optional[str] = None
    amount: Optional[Decimal] = Field(None, ge=0)
    status: str = "pending"
    payment_status: OrderPaymentStatus = OrderPaymentStatus.PENDING


class OrderResponse(BaseModel):
    order_id: str
    property_id: Optional[str] = None
    amount: Optional[Decimal] = None
    status: str
    payment_status: str
    linked_to_stay_id: Optional[UUID] = None
    billed_via_stay_id: Optional[UUID] = None
    billed_at: Optional[datetime] = None
    paid_via: Optional[str] = None


# ============================================================================
# AVAILABILITY SCHEMAS
# ============================================================================

class RoomsByStatusResponse(BaseModel):
    property_id: str
    rooms: Dict[str, List[str]]


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    """Token response DTO"""
    access_token: str
    token_type: str

class TokenData(BaseModel):
    """Token payload DTO"""
    username: Optional[str] = None
    role: Optional[Role] = None

class UserResponse(BaseModel):
    """User response DTO"""
    user_id: UUID
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Role
    disabled: bool
