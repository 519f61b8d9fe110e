from fastapi import FastAPI, HTTPException, Depends
from uuid import UUID
from datetime import date, timedelta
from typing import Dict, List, Optional
from fastapi.security import OAuth2PasswordRequestForm
import logging

from api.schemas import (
    # Rooms
    CreateRoomRequest, BulkCreateRoomsRequest, UpdateRoomStatusRequest, RoomResponse,
    BulkCreateRoomsResponse, RoomsByStatusResponse, ScheduleMaintenanceRequest,
    CancelMaintenanceRequest, MaintenanceResponse,
    # Bookings
    CreateBookingRequest, CancelBookingRequest, ValidateOverlapRequest, ValidateOverlapResponse,
    BookingResponse, ConflictResponse,
    # Stays
    ConvertBookingRequest, WalkInRequest, LinkOrderRequest, CheckoutRequest, UpdateStayRequest, StayResponse,
    # Guests
    GuestResponse,
    # Orders
    RegisterOrderRequest, OrderResponse,
    # Auth
    Token, UserResponse
)

from api.dependencies import (
    get_current_active_user, fake_users_db, get_user, require_override_permission
)
from infrastructure.config import settings
from infrastructure.security import verify_password, create_access_token
from infrastructure.events import InMemoryEventBus
from domain.auth import User

from application.conflicts import ConflictDetector, RoomAllocator
from application.services import RoomService, GuestDirectory, BookingService, StayService
from application.availability import AvailabilityService, AvailabilityReport, DaySummary
from infrastructure.repositories.in_memory_repositories import (
    InMemoryRoomRepository, InMemoryMaintenanceRepository, InMemoryBookingRepository,
    InMemoryStayRepository, InMemoryGuestRepository, InMemoryOrderGateway, InMemoryRoomNightRegistry
)
from domain.billing import Invoice, LedgerTotals
from domain.entities import Order
from domain.enums import RoomStatus, BookingStatus, StayStatus, BookingSource, PaymentMode
from domain.errors import (
    DomainError, NotFound, ValidationError, BookingTooFarAhead, ConcurrencyConflict
)
from domain.events import EventType, StayEvent
from domain.value_objects import RoomRef, UnavailableOverride

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Room allocation, booking and stay lifecycle engine",
    version="1.0.0",
    debug=settings.DEBUG
)

# Initialize repositories
room_repo = InMemoryRoomRepository()
maintenance_repo = InMemoryMaintenanceRepository()
booking_repo = InMemoryBookingRepository()
stay_repo = InMemoryStayRepository()
guest_repo = InMemoryGuestRepository()
order_gateway = InMemoryOrderGateway()
room_night_registry = InMemoryRoomNightRegistry()
event_bus = InMemoryEventBus()


def _log_stay_event(event: StayEvent) -> None:
    logger.info(f"{event.event_type.value}: {event.guest_name}, room {event.room_number} ({event.property_id})")

event_bus.subscribe(EventType.GUEST_CHECKED_IN, _log_stay_event)
event_bus.subscribe(EventType.GUEST_CHECKED_OUT, _log_stay_event)

# Dependency injection
def get_room_service() -> RoomService:
    return RoomService(room_repo, maintenance_repo, stay_repo)

def _get_detector() -> ConflictDetector:
    return ConflictDetector(booking_repo, stay_repo, maintenance_repo)

def _get_allocator() -> RoomAllocator:
    return RoomAllocator(_get_detector(), room_night_registry, booking_repo, stay_repo)

def get_guest_directory() -> GuestDirectory:
    return GuestDirectory(guest_repo)

def get_booking_service() -> BookingService:
    return BookingService(
        get_room_service(), booking_repo, stay_repo, _get_detector(), _get_allocator(), event_bus,
        get_guest_directory()
    )

def get_stay_service() -> StayService:
    return StayService(
        get_room_service(), stay_repo, _get_allocator(), order_gateway, event_bus, get_guest_directory()
    )

def get_availability_service() -> AvailabilityService:
    return AvailabilityService(room_repo, booking_repo, stay_repo, maintenance_repo)


def _to_http_exception(error: DomainError) -> HTTPException:
    """Map a domain error to its HTTP status; the body keeps the error's code and extras"""
    headers = None
    if isinstance(error, NotFound):
        status_code = 404
    elif isinstance(error, (ValidationError, BookingTooFarAhead)):
        status_code = 400
    elif isinstance(error, ConcurrencyConflict):
        status_code = 503
        headers = {"Retry-After": "1"}
    else:
        status_code = 409
    return HTTPException(status_code=status_code, detail=error.to_dict(), headers=headers)


def _override_for(request_override, current_user: User) -> Optional[UnavailableOverride]:
    if request_override is None:
        return None
    require_override_permission(current_user)
    return UnavailableOverride(authorized_by=current_user.username, reason=request_override.reason)

# ============================================================================
# HEALTH & ENUM REFERENCE ENDPOINTS
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}

@app.get("/api/enums/room-status", tags=["Enum Reference"])
async def get_room_statuses():
    """Get all RoomStatus enum values"""
    return {
        "values": [item.value for item in RoomStatus],
        "description": "Room status values: AVAILABLE, RESERVED, OCCUPIED, CLEANING, MAINTENANCE, OUT_OF_SERVICE"
    }

@app.get("/api/enums/booking-status", tags=["Enum Reference"])
async def get_booking_statuses():
    """Get all BookingStatus enum values"""
    return {
        "values": [item.value for item in BookingStatus],
        "description": "Booking status values: CONFIRMED, CHECKED_IN, CANCELLED"
    }

@app.get("/api/enums/booking-source", tags=["Enum Reference"])
async def get_booking_sources():
    """Get all BookingSource enum values"""
    return {"values": [item.value for item in BookingSource]}

@app.get("/api/enums/payment-mode", tags=["Enum Reference"])
async def get_payment_modes():
    """Get all PaymentMode enum values"""
    return {"values": [item.value for item in PaymentMode]}

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = get_user(fake_users_db, form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": user.username, "role": user.role.value}, expires_delta=access_token_expires
    )
    return {"access_token": access_token, "token_type": "bearer"}

@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return current_user

# ============================================================================
# ROOM DIRECTORY ENDPOINTS
# ============================================================================

@app.post("/api/rooms", response_model=RoomResponse, status_code=201, tags=["Rooms"])
async def add_room(
    request: CreateRoomRequest,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """Add a room to a property"""
    try:
        room = await service.add_room(
            property_id=request.property_id,
            room_number=request.room_number,
            room_type=request.room_type,
            floor=request.floor,
            capacity=request.capacity,
            tariff=request.tariff,
            amenities=request.amenities
        )
        return _room_to_response(room)
    except DomainError as e:
        raise _to_http_exception(e)

@app.post("/api/rooms/bulk", response_model=BulkCreateRoomsResponse, status_code=201, tags=["Rooms"])
async def bulk_add_rooms(
    request: BulkCreateRoomsRequest,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """Add a numeric range of rooms; numbers that already exist are skipped"""
    try:
        created, skipped = await service.bulk_add_rooms(
            property_id=request.property_id,
            from_number=request.from_number,
            to_number=request.to_number,
            room_type=request.room_type,
            floor=request.floor,
            capacity=request.capacity,
            tariff=request.tariff,
            amenities=request.amenities
        )
        return BulkCreateRoomsResponse(
            created=[_room_to_response(r) for r in created],
            skipped=skipped
        )
    except DomainError as e:
        raise _to_http_exception(e)

@app.get("/api/properties/{property_id}/rooms", response_model=List[RoomResponse], tags=["Rooms"])
async def list_rooms(
    property_id: str,
    status: Optional[RoomStatus] = None,
    floor: Optional[str] = None,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """List rooms of a property in room-number order"""
    rooms = await service.list_rooms(property_id, status=status, floor=floor)
    return [_room_to_response(r) for r in rooms]

@app.get("/api/properties/{property_id}/rooms/by-status", response_model=RoomsByStatusResponse, tags=["Rooms"])
async def rooms_by_status(
    property_id: str,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """Room numbers grouped by status"""
    grouped = await service.rooms_by_status(property_id)
    return RoomsByStatusResponse(
        property_id=property_id,
        rooms={status.value: numbers for status, numbers in grouped.items()}
    )

@app.get("/api/properties/{property_id}/rooms/{room_number}", response_model=RoomResponse, tags=["Rooms"])
async def get_room_by_number(
    property_id: str,
    room_number: str,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get room by property and room number"""
    try:
        room = await service.get_room(RoomRef.by_number(property_id, room_number))
        return _room_to_response(room)
    except DomainError as e:
        raise _to_http_exception(e)

@app.get("/api/rooms/{room_id}", response_model=RoomResponse, tags=["Rooms"])
async def get_room(
    room_id: UUID,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get room by ID"""
    try:
        room = await service.get_room(RoomRef.by_id(room_id))
        return _room_to_response(room)
    except DomainError as e:
        raise _to_http_exception(e)

@app.put("/api/rooms/{room_id}/status", response_model=RoomResponse, tags=["Rooms"])
async def update_room_status(
    room_id: UUID,
    request: UpdateRoomStatusRequest,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """Housekeeping status change (available, cleaning, maintenance, out of service)"""
    try:
        room = await service.update_room_status(
            RoomRef.by_id(room_id), request.status, updated_by=current_user.username
        )
        return _room_to_response(room)
    except DomainError as e:
        raise _to_http_exception(e)

@app.delete("/api/rooms/{room_id}", tags=["Rooms"])
async def delete_room(
    room_id: UUID,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """Delete a room that no guest is checked in to"""
    try:
        await service.delete_room(RoomRef.by_id(room_id))
        return {"message": "Room deleted successfully", "room_id": str(room_id)}
    except DomainError as e:
        raise _to_http_exception(e)

@app.post("/api/rooms/{room_id}/maintenance", response_model=MaintenanceResponse, status_code=201, tags=["Maintenance"])
async def schedule_maintenance(
    room_id: UUID,
    request: ScheduleMaintenanceRequest,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """Block a room for maintenance between two dates (inclusive)"""
    try:
        schedule = await service.schedule_maintenance(
            RoomRef.by_id(room_id),
            start_date=request.start_date,
            end_date=request.end_date,
            reason=request.reason,
            created_by=current_user.username
        )
        return _maintenance_to_response(schedule)
    except DomainError as e:
        raise _to_http_exception(e)

@app.get("/api/rooms/{room_id}/maintenance", response_model=List[MaintenanceResponse], tags=["Maintenance"])
async def list_maintenance(
    room_id: UUID,
    include_inactive: bool = False,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """List maintenance schedules of a room"""
    try:
        schedules = await service.list_maintenance(RoomRef.by_id(room_id), include_inactive)
        return [_maintenance_to_response(s) for s in schedules]
    except DomainError as e:
        raise _to_http_exception(e)

@app.post("/api/rooms/{room_id}/maintenance/cancel", tags=["Maintenance"])
async def cancel_maintenance(
    room_id: UUID,
    request: CancelMaintenanceRequest,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """Cancel all maintenance of a room, or only schedules overlapping a date range"""
    try:
        cancelled = await service.cancel_maintenance(
            RoomRef.by_id(room_id), request.start_date, request.end_date
        )
        return {"room_id": str(room_id), "cancelled": cancelled}
    except DomainError as e:
        raise _to_http_exception(e)

# ============================================================================
# BOOKING ENDPOINTS
# ============================================================================

@app.post("/api/bookings", response_model=BookingResponse, status_code=201, tags=["Bookings"])
async def create_booking(
    request: CreateBookingRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """Create a confirmed booking"""
    override = _override_for(request.override_unavailable, current_user)
    try:
        booking = await service.create_booking(
            room_ref=request.to_ref(),
            guest=request.guest.to_guest(),
            check_in=request.check_in,
            check_out=request.check_out,
            guest_count=request.guest_count,
            tariff=request.tariff,
            override=override,
            special_requests=request.special_requests,
            booking_source=request.booking_source,
            created_by=current_user.username
        )
        return _booking_to_response(booking)
    except DomainError as e:
        raise _to_http_exception(e)

@app.post("/api/bookings/validate", response_model=ValidateOverlapResponse, tags=["Bookings"])
async def validate_overlap(
    request: ValidateOverlapRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """Dry-run conflict check before submitting a booking"""
    try:
        conflicts = await service.validate_overlap(
            room_ref=request.to_ref(),
            check_in=request.check_in,
            check_out=request.check_out,
            exclude_booking_id=request.exclude_booking_id,
            include_maintenance=request.include_maintenance
        )
        return ValidateOverlapResponse(
            available=not conflicts,
            conflicts=[ConflictResponse(**c.model_dump(mode="json")) for c in conflicts]
        )
    except DomainError as e:
        raise _to_http_exception(e)

@app.get("/api/properties/{property_id}/bookings", response_model=List[BookingResponse], tags=["Bookings"])
async def list_bookings(
    property_id: str,
    status: Optional[BookingStatus] = None,
    check_in: Optional[date] = None,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """List bookings of a property"""
    bookings = await service.list_bookings(property_id, status=status, check_in=check_in)
    return [_booking_to_response(b) for b in bookings]

@app.get("/api/bookings/{booking_id}", response_model=BookingResponse, tags=["Bookings"])
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get booking by ID"""
    try:
        return _booking_to_response(await service.get_booking(booking_id))
    except DomainError as e:
        raise _to_http_exception(e)

@app.post("/api/bookings/{booking_id}/cancel", response_model=BookingResponse, tags=["Bookings"])
async def cancel_booking(
    booking_id: UUID,
    request: CancelBookingRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """Cancel a booking (cancelling twice is a no-op)"""
    try:
        booking = await service.cancel_booking(
            booking_id, reason=request.reason, cancelled_by=current_user.username
        )
        return _booking_to_response(booking)
    except DomainError as e:
        raise _to_http_exception(e)

@app.post("/api/bookings/{booking_id}/check-in", response_model=StayResponse, status_code=201, tags=["Bookings"])
async def convert_booking_to_stay(
    booking_id: UUID,
    request: ConvertBookingRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """Check in the guest of a confirmed booking"""
    try:
        stay = await service.convert_to_stay(
            booking_id,
            advance_payment=request.advance_payment,
            payment_mode=request.payment_mode,
            id_proof=request.id_proof.to_id_proof() if request.id_proof else None,
            gst_info=request.gst_info,
            checked_in_by=current_user.username
        )
        return _stay_to_response(stay)
    except DomainError as e:
        raise _to_http_exception(e)

# ============================================================================
# STAY ENDPOINTS
# ============================================================================

@app.post("/api/stays", response_model=StayResponse, status_code=201, tags=["Stays"])
async def walk_in_check_in(
    request: WalkInRequest,
    service: StayService = Depends(get_stay_service),
    current_user: User = Depends(get_current_active_user)
):
    """Walk-in check-in without a booking"""
    override = _override_for(request.override_unavailable, current_user)
    try:
        stay = await service.check_in(
            room_ref=request.to_ref(),
            guest=request.guest.to_guest(),
            check_in=request.check_in,
            check_out=request.check_out,
            guest_count=request.guest_count,
            room_tariff=request.room_tariff,
            advance_payment=request.advance_payment,
            payment_mode=request.payment_mode,
            id_proof=request.id_proof.to_id_proof() if request.id_proof else None,
            override=override,
            special_requests=request.special_requests,
            checked_in_by=current_user.username,
            gst_info=request.gst_info
        )
        return _stay_to_response(stay)
    except DomainError as e:
        raise _to_http_exception(e)

@app.get("/api/properties/{property_id}/stays", response_model=List[StayResponse], tags=["Stays"])
async def list_stays(
    property_id: str,
    status: Optional[StayStatus] = None,
    service: StayService = Depends(get_stay_service),
    current_user: User = Depends(get_current_active_user)
):
    """List stays of a property, newest check-in first"""
    stays = await service.list_stays(property_id, status=status)
    return [_stay_to_response(s) for s in stays]

@app.get("/api/properties/{property_id}/stays/history", response_model=List[StayResponse], tags=["Stays"])
async def stay_history(
    property_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    room_id: Optional[UUID] = None,
    service: StayService = Depends(get_stay_service),
    current_user: User = Depends(get_current_active_user)
):
    """Checked-out stays filtered by checkout date and room"""
    stays = await service.stay_history(property_id, start_date, end_date, room_id)
    return [_stay_to_response(s) for s in stays]

@app.get("/api/rooms/{room_id}/active-stay", response_model=Optional[StayResponse], tags=["Stays"])
async def get_active_stay(
    room_id: UUID,
    service: StayService = Depends(get_stay_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get the stay currently checked in to a room, if any"""
    try:
        stay = await service.get_active_stay_for_room(RoomRef.by_id(room_id))
        return _stay_to_response(stay) if stay else None
    except DomainError as e:
        raise _to_http_exception(e)

@app.get("/api/stays/{stay_id}", response_model=StayResponse, tags=["Stays"])
async def get_stay(
    stay_id: UUID,
    service: StayService = Depends(get_stay_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get stay by ID"""
    try:
        return _stay_to_response(await service.get_stay(stay_id))
    except DomainError as e:
        raise _to_http_exception(e)

@app.patch("/api/stays/{stay_id}", response_model=StayResponse, tags=["Stays"])
async def update_stay(
    stay_id: UUID,
    request: UpdateStayRequest,
    service: StayService = Depends(get_stay_service),
    current_user: User = Depends(get_current_active_user)
):
    """Correct guest details of an active stay"""
    try:
        stay = await service.update_stay(
            stay_id,
            guest=request.guest.to_guest() if request.guest else None,
            guest_count=request.guest_count,
            id_proof=request.id_proof.to_id_proof() if request.id_proof else None,
            gst_info=request.gst_info,
            special_requests=request.special_requests,
            updated_by=current_user.username
        )
        return _stay_to_response(stay)
    except DomainError as e:
        raise _to_http_exception(e)

@app.post("/api/stays/{stay_id}/orders", response_model=LedgerTotals, tags=["Stays"])
async def link_order(
    stay_id: UUID,
    request: LinkOrderRequest,
    service: StayService = Depends(get_stay_service),
    current_user: User = Depends(get_current_active_user)
):
    """Bill an external order to the stay"""
    try:
        return await service.link_order(stay_id, request.order_id, request.order_amount)
    except DomainError as e:
        raise _to_http_exception(e)

@app.get("/api/stays/{stay_id}/invoice", response_model=Invoice, tags=["Stays"])
async def get_invoice(
    stay_id: UUID,
    service: StayService = Depends(get_stay_service),
    current_user: User = Depends(get_current_active_user)
):
    """Invoice recomputed from the ledger, charges, discounts and payments"""
    try:
        return await service.get_invoice(stay_id)
    except DomainError as e:
        raise _to_http_exception(e)

@app.post("/api/stays/{stay_id}/checkout", response_model=Invoice, tags=["Stays"])
async def checkout(
    stay_id: UUID,
    request: CheckoutRequest,
    service: StayService = Depends(get_stay_service),
    current_user: User = Depends(get_current_active_user)
):
    """Check the guest out and return the final invoice"""
    try:
        return await service.checkout(
            stay_id,
            final_payment=request.final_payment,
            payment_mode=request.payment_mode,
            discounts=request.discounts,
            additional_charges=request.additional_charges,
            notes=request.notes,
            checked_out_by=current_user.username
        )
    except DomainError as e:
        raise _to_http_exception(e)

# ============================================================================
# GUEST ENDPOINTS
# ============================================================================

@app.get("/api/properties/{property_id}/guests", response_model=List[GuestResponse], tags=["Guests"])
async def search_guests(
    property_id: str,
    phone: Optional[str] = None,
    name: Optional[str] = None,
    directory: GuestDirectory = Depends(get_guest_directory),
    current_user: User = Depends(get_current_active_user)
):
    """Search returning guests by phone and/or name, latest visit first"""
    guests = await directory.search(property_id, phone=phone, name=name)
    return [_guest_to_response(g) for g in guests]

@app.get("/api/guests/{guest_id}", response_model=GuestResponse, tags=["Guests"])
async def get_guest(
    guest_id: UUID,
    directory: GuestDirectory = Depends(get_guest_directory),
    current_user: User = Depends(get_current_active_user)
):
    """Get guest by ID"""
    try:
        return _guest_to_response(await directory.get_guest(guest_id))
    except DomainError as e:
        raise _to_http_exception(e)

# ============================================================================
# ORDER ENDPOINTS
# ============================================================================

@app.post("/api/orders", response_model=OrderResponse, status_code=201, tags=["Orders"])
async def register_order(
    request: RegisterOrderRequest,
    current_user: User = Depends(get_current_active_user)
):
    """Mirror an order created by the point-of-sale system"""
    order = await order_gateway.register_order(Order(
        order_id=request.order_id,
        property_id=request.property_id,
        amount=request.amount,
        status=request.status,
        payment_status=request.payment_status
    ))
    return _order_to_response(order)

@app.get("/api/orders/{order_id}", response_model=OrderResponse, tags=["Orders"])
async def get_order(
    order_id: str,
    current_user: User = Depends(get_current_active_user)
):
    """Get order with the link and billing flags written by this service"""
    order = await order_gateway.get_order(order_id)
    if not order:
        raise _to_http_exception(NotFound("Order", order_id))
    return _order_to_response(order)

# ============================================================================
# AVAILABILITY ENDPOINTS
# ============================================================================

@app.get("/api/properties/{property_id}/availability", response_model=AvailabilityReport, tags=["Availability"])
async def room_availability(
    property_id: str,
    on_date: Optional[date] = None,
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(get_current_active_user)
):
    """Current and scheduled status of every room on a date (default today)"""
    return await service.room_availability(property_id, on_date or date.today())

@app.get("/api/properties/{property_id}/calendar", response_model=Dict[date, DaySummary], tags=["Availability"])
async def month_summary(
    property_id: str,
    month: int,
    year: int,
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(get_current_active_user)
):
    """Per-day booking count and occupancy rate for a month"""
    try:
        return await service.month_summary(property_id, month, year)
    except DomainError as e:
        raise _to_http_exception(e)

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _room_to_response(room) -> RoomResponse:
    """Convert Room entity to RoomResponse"""
    return RoomResponse(
        room_id=room.room_id,
        property_id=room.property_id,
        room_number=room.room_number,
        room_type=room.room_type,
        floor=room.floor,
        capacity=room.capacity,
        tariff=room.tariff,
        amenities=room.amenities,
        status=room.status.value,
        active_stay_id=room.active_stay_id,
        reserved_booking_id=room.reserved_booking_id,
        version=room.version
    )

def _maintenance_to_response(schedule) -> MaintenanceResponse:
    """Convert MaintenanceSchedule to MaintenanceResponse"""
    return MaintenanceResponse(
        maintenance_id=schedule.maintenance_id,
        room_id=schedule.room_id,
        room_number=schedule.room_number,
        start_date=schedule.start_date,
        end_date=schedule.end_date,
        reason=schedule.reason,
        active=schedule.active,
        created_by=schedule.created_by,
        created_at=schedule.created_at
    )

def _booking_to_response(booking) -> BookingResponse:
    """Convert Booking entity to BookingResponse"""
    return BookingResponse(
        booking_id=booking.booking_id,
        property_id=booking.property_id,
        room_id=booking.room_id,
        room_number=booking.room_number,
        guest_name=booking.guest.name,
        guest_phone=booking.guest.phone,
        guest_email=booking.guest.email,
        check_in=booking.date_range.check_in,
        check_out=booking.date_range.check_out,
        stay_duration=booking.stay_duration,
        guest_count=booking.guest_count,
        estimated_tariff=booking.estimated_tariff,
        total_estimate=booking.total_estimate,
        special_requests=booking.special_requests,
        booking_source=booking.booking_source.value,
        status=booking.status.value,
        override_authorized_by=(
            booking.unavailable_override.authorized_by if booking.unavailable_override else None
        ),
        cancellation_reason=booking.cancellation_reason,
        cancelled_at=booking.cancelled_at,
        stay_id=booking.stay_id,
        created_by=booking.created_by,
        created_at=booking.created_at,
        version=booking.version
    )

def _stay_to_response(stay) -> StayResponse:
    """Convert Stay entity to StayResponse"""
    return StayResponse(
        stay_id=stay.stay_id,
        property_id=stay.property_id,
        room_id=stay.room_id,
        room_number=stay.room_number,
        guest_name=stay.guest.name,
        guest_phone=stay.guest.phone,
        guest_email=stay.guest.email,
        check_in=stay.date_range.check_in,
        check_out=stay.date_range.check_out,
        stay_duration=stay.stay_duration,
        guest_count=stay.guest_count,
        room_tariff=stay.room_tariff,
        id_proof=stay.id_proof,
        gst_info=stay.gst_info,
        special_requests=stay.special_requests,
        ledger=stay.ledger,
        advance_payment=stay.advance_payment,
        payment_mode=stay.payment_mode.value,
        final_payment=stay.final_payment,
        booking_id=stay.booking_id,
        status=stay.status.value,
        billing_complete=stay.billing_complete,
        checked_in_by=stay.checked_in_by,
        checked_in_at=stay.checked_in_at,
        checked_out_at=stay.checked_out_at,
        version=stay.version
    )

def _guest_to_response(guest) -> GuestResponse:
    return GuestResponse(
        guest_id=guest.guest_id,
        property_id=guest.property_id,
        name=guest.name,
        phone=guest.phone,
        email=guest.email,
        id_proof=guest.id_proof,
        gst_info=guest.gst_info,
        visit_count=guest.visit_count,
        last_stay_id=guest.last_stay_id,
        last_visit_at=guest.last_visit_at,
        created_at=guest.created_at
    )

def _order_to_response(order) -> OrderResponse:
    """Convert Order to OrderResponse"""
    return OrderResponse(
        order_id=order.order_id,
        property_id=order.property_id,
        amount=order.amount,
        status=order.status,
        payment_status=order.payment_status.value,
        linked_to_stay_id=order.linked_to_stay_id,
        billed_via_stay_id=order.billed_via_stay_id,
        billed_at=order.billed_at,
        paid_via=order.paid_via
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
