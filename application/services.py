"""Application Services - Business use cases"""
from uuid import UUID
from datetime import date, timedelta
from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar
import logging

from domain.repositories import (
    RoomRepository, MaintenanceRepository, BookingRepository, StayRepository, GuestRepository,
    OrderGateway
)
from domain.entities import Room, MaintenanceSchedule, Booking, Stay, Guest
from domain.enums import (
    RoomStatus, BookingStatus, StayStatus, BookingSource, PaymentMode, ConflictSource
)
from domain.errors import (
    ValidationError, NotFound, RoomUnavailable, BookingTooFarAhead,
    StayNotActive, OrderAlreadyLinked, OrderAlreadyBilled, ConcurrencyConflict
)
from domain.billing import Invoice, LedgerTotals, compute_invoice, compute_ledger_totals
from domain.events import EventType, StayEvent
from domain.value_objects import (
    DateRange, GuestInfo, IdProof, GstInfo, ChargeItem, LedgerEntry, UnavailableOverride, Conflict,
    RoomRef, overlaps, to_money
)
from application.conflicts import ConflictDetector, RoomAllocator
from infrastructure.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ROOM_NUMBER = 9999


async def commit_with_retry(entity: str, identifier, attempt: Callable[[], Awaitable[T]],
                            max_attempts: int) -> T:
    """Run a read-modify-write until its compare-and-set wins

    `attempt` must re-read the aggregate on every call. Domain errors raised
    by the attempt propagate immediately; only lost compare-and-sets retry.
    """
    for attempt_no in range(1, max_attempts + 1):
        try:
            return await attempt()
        except ConcurrencyConflict:
            logger.warning(f"{entity} {identifier} changed concurrently (attempt {attempt_no}/{max_attempts})")
    raise ConcurrencyConflict(entity, identifier, attempts=max_attempts)


def validate_stay_request(guest: GuestInfo, check_in: date, check_out: date,
                          advance_booking_days: int, today: Optional[date] = None) -> DateRange:
    """Checks shared by bookings and walk-ins, run before any read"""
    today = today or date.today()
    if guest is None or not guest.name or not guest.name.strip():
        raise ValidationError("Guest name is required")
    if check_out <= check_in:
        raise ValidationError("Check-out date must be after check-in date")
    if check_in < today:
        raise ValidationError("Check-in date cannot be in the past")
    if check_in > today + timedelta(days=advance_booking_days):
        raise BookingTooFarAhead(check_in, advance_booking_days)
    return DateRange(check_in=check_in, check_out=check_out)


def number_sort_key(room_number: str):
    """Numeric room numbers first, in numeric order"""
    if room_number.isdigit():
        return (0, int(room_number), room_number)
    return (1, 0, room_number)


def room_sort_key(room: Room):
    return number_sort_key(room.room_number)


# ============================================================================
# ROOM DIRECTORY
# ============================================================================

class RoomService:
    """Room directory, housekeeping status and maintenance schedules"""

    def __init__(self,
                 room_repo: RoomRepository,
                 maintenance_repo: MaintenanceRepository,
                 stay_repo: StayRepository,
                 max_attempts: int = settings.MAX_COMMIT_ATTEMPTS):
        self.room_repo = room_repo
        self.maintenance_repo = maintenance_repo
        self.stay_repo = stay_repo
        self.max_attempts = max_attempts

    async def resolve(self, ref: RoomRef) -> Room:
        """Turn either form of room reference into the Room record"""
        if ref.is_by_id:
            room = await self.room_repo.find_by_id(ref.room_id)
        elif ref.property_id and ref.room_number:
            room = await self.room_repo.find_by_number(ref.property_id, ref.room_number)
        else:
            raise ValidationError("A room id or a property id and room number is required")

        if room is None:
            raise NotFound("Room", ref.describe())
        return room

    async def mutate_room(self, room_id: UUID, change: Callable[[Room], bool]) -> Room:
        """Apply `change` to a fresh copy of the room and commit it

        `change` returns False when there is nothing to write.
        """
        async def _attempt():
            room = await self.room_repo.find_by_id(room_id)
            if room is None:
                raise NotFound("Room", room_id)
            expected = room.version
            if not change(room):
                return room
            return await self.room_repo.update(room, expected)

        return await commit_with_retry("Room", room_id, _attempt, self.max_attempts)

    async def add_room(
        self,
        property_id: str,
        room_number: str,
        room_type: str = "standard",
        floor: str = "Ground",
        capacity: int = 2,
        tariff: Decimal = Decimal("0"),
        amenities: Optional[List[str]] = None
    ) -> Room:
        if not room_number or not room_number.strip():
            raise ValidationError("Room number is required")

        room = Room(
            property_id=property_id,
            room_number=room_number.strip(),
            room_type=room_type,
            floor=floor,
            capacity=capacity,
            tariff=to_money(tariff),
            amenities=amenities or []
        )
        room = await self.room_repo.save(room)
        logger.info(f"Room {room.room_number} added to property {property_id}")
        return room

    async def bulk_add_rooms(
        self,
        property_id: str,
        from_number: int,
        to_number: int,
        room_type: str = "standard",
        floor: str = "Ground",
        capacity: int = 2,
        tariff: Decimal = Decimal("0"),
        amenities: Optional[List[str]] = None
    ) -> Tuple[List[Room], List[str]]:
        """Add every room number in [from_number, to_number]; existing numbers are skipped"""
        if from_number < 1 or to_number > MAX_ROOM_NUMBER:
            raise ValidationError(f"Room numbers must be between 1 and {MAX_ROOM_NUMBER}")
        if from_number > to_number:
            raise ValidationError("Starting room number must not exceed the ending room number")

        existing = {r.room_number for r in await self.room_repo.find_by_property(property_id)}
        created, skipped = [], []
        for number in range(from_number, to_number + 1):
            room_number = str(number)
            if room_number in existing:
                skipped.append(room_number)
                continue
            try:
                created.append(await self.add_room(
                    property_id, room_number, room_type, floor, capacity, tariff, amenities
                ))
            except ValidationError:
                # Added concurrently since the existing-number read
                skipped.append(room_number)

        logger.info(f"Bulk added {len(created)} room(s) to {property_id}, skipped {len(skipped)}")
        return created, skipped

    async def get_room(self, ref: RoomRef) -> Room:
        return await self.resolve(ref)

    async def list_rooms(self, property_id: str, status: Optional[RoomStatus] = None,
                         floor: Optional[str] = None) -> List[Room]:
        rooms = await self.room_repo.find_by_property(property_id)
        if status is not None:
            rooms = [r for r in rooms if r.status == status]
        if floor is not None:
            rooms = [r for r in rooms if r.floor == floor]
        return sorted(rooms, key=room_sort_key)

    async def rooms_by_status(self, property_id: str) -> Dict[RoomStatus, List[str]]:
        """Room numbers grouped by status, every status present"""
        grouped: Dict[RoomStatus, List[str]] = {status: [] for status in RoomStatus}
        for room in await self.list_rooms(property_id):
            grouped[room.status].append(room.room_number)
        return grouped

    async def update_room_status(self, ref: RoomRef, status: RoomStatus, updated_by: str = "SYSTEM") -> Room:
        room = await self.resolve(ref)

        def _change(r: Room) -> bool:
            r.set_status(status)
            return True

        room = await self.mutate_room(room.room_id, _change)
        logger.info(f"Room {room.room_number} set to {status.value} by {updated_by}")
        return room

    async def delete_room(self, ref: RoomRef) -> bool:
        room = await self.resolve(ref)
        active = await self.stay_repo.find_by_room(room.room_id, StayStatus.CHECKED_IN)
        if room.active_stay_id is not None or active:
            raise RoomUnavailable(
                room.room_number, room.status.value,
                f"Cannot delete room {room.room_number} while a guest is checked in"
            )
        deleted = await self.room_repo.delete(room.room_id)
        logger.info(f"Room {room.room_number} deleted from property {room.property_id}")
        return deleted

    # ==================== MAINTENANCE ====================

    async def schedule_maintenance(
        self,
        ref: RoomRef,
        start_date: date,
        end_date: date,
        reason: Optional[str] = None,
        created_by: str = "SYSTEM"
    ) -> MaintenanceSchedule:
        """Block a room for [start_date, end_date] (both inclusive)"""
        today = date.today()
        if start_date < today:
            raise ValidationError("Maintenance cannot start in the past")
        if end_date < start_date:
            raise ValidationError("Maintenance end date must not be before its start date")

        room = await self.resolve(ref)
        schedule = await self.maintenance_repo.save(MaintenanceSchedule(
            property_id=room.property_id,
            room_id=room.room_id,
            room_number=room.room_number,
            start_date=start_date,
            end_date=end_date,
            reason=reason or "Maintenance required",
            created_by=created_by
        ))

        if schedule.covers(today):
            def _block(r: Room) -> bool:
                if r.active_stay_id is not None or r.status == RoomStatus.MAINTENANCE:
                    return False
                r.set_status(RoomStatus.MAINTENANCE)
                return True

            await self.mutate_room(room.room_id, _block)

        logger.info(
            f"Maintenance scheduled for room {room.room_number} "
            f"{start_date}..{end_date} by {created_by}"
        )
        return schedule

    async def list_maintenance(self, ref: RoomRef, include_inactive: bool = False) -> List[MaintenanceSchedule]:
        room = await self.resolve(ref)
        return await self.maintenance_repo.find_by_room(room.room_id, active_only=not include_inactive)

    async def cancel_maintenance(self, ref: RoomRef, start_date: Optional[date] = None,
                                 end_date: Optional[date] = None) -> int:
        """Cancel all active schedules, or those overlapping [start_date, end_date]"""
        if (start_date is None) != (end_date is None):
            raise ValidationError("Provide both start and end dates, or neither")
        if start_date is not None and end_date < start_date:
            raise ValidationError("End date must not be before start date")

        room = await self.resolve(ref)
        cancelled = 0
        for schedule in await self.maintenance_repo.find_by_room(room.room_id):
            if start_date is not None:
                blocked = schedule.blocked_range
                if not overlaps(blocked.check_in, blocked.check_out,
                                start_date, end_date + timedelta(days=1)):
                    continue
            expected = schedule.version
            schedule.cancel()
            await self.maintenance_repo.update(schedule, expected)
            cancelled += 1

        today = date.today()
        remaining = await self.maintenance_repo.find_by_room(room.room_id)
        if not any(s.covers(today) for s in remaining):
            def _unblock(r: Room) -> bool:
                if r.status != RoomStatus.MAINTENANCE:
                    return False
                r.set_status(RoomStatus.AVAILABLE)
                return True

            await self.mutate_room(room.room_id, _unblock)

        logger.info(f"Cancelled {cancelled} maintenance schedule(s) for room {room.room_number}")
        return cancelled


# ============================================================================
# GUEST DIRECTORY
# ============================================================================

class GuestDirectory:
    """Guest records upserted on every check-in"""

    SEARCH_LIMIT = 50

    def __init__(self, guest_repo: GuestRepository, max_attempts: int = settings.MAX_COMMIT_ATTEMPTS):
        self.guest_repo = guest_repo
        self.max_attempts = max_attempts

    async def record_visit(self, stay: Stay, recorded_by: str = "SYSTEM") -> Guest:
        """Create the guest on first check-in, otherwise refresh details and count the visit"""
        async def _attempt():
            known = [
                g for g in await self.guest_repo.find_by_property(stay.property_id)
                if g.matches(stay.guest)
            ]
            if not known:
                guest = Guest(property_id=stay.property_id, name=stay.guest.name, created_by=recorded_by)
                guest.record_visit(stay)
                return await self.guest_repo.save(guest)

            guest = min(known, key=lambda g: g.created_at)
            expected = guest.version
            guest.record_visit(stay)
            return await self.guest_repo.update(guest, expected)

        guest = await commit_with_retry(
            "Guest", stay.guest.phone or stay.guest.name, _attempt, self.max_attempts
        )
        logger.info(f"Guest {guest.guest_id} ({guest.name}) recorded for stay {stay.stay_id}, visit {guest.visit_count}")
        return guest

    async def get_guest(self, guest_id: UUID) -> Guest:
        guest = await self.guest_repo.find_by_id(guest_id)
        if guest is None:
            raise NotFound("Guest", guest_id)
        return guest

    async def search(self, property_id: str, phone: Optional[str] = None,
                     name: Optional[str] = None) -> List[Guest]:
        """Exact phone match and/or case-insensitive name fragment, latest visit first"""
        guests = await self.guest_repo.find_by_property(property_id)
        if phone:
            guests = [g for g in guests if g.phone == phone.strip()]
        if name:
            fragment = name.strip().lower()
            guests = [g for g in guests if fragment in g.name.lower()]
        guests.sort(key=lambda g: g.last_visit_at or g.created_at, reverse=True)
        return guests[:self.SEARCH_LIMIT]


# ============================================================================
# BOOKING LIFECYCLE
# ============================================================================

class BookingService:
    """Service for Booking business use cases"""

    def __init__(self,
                 room_service: RoomService,
                 booking_repo: BookingRepository,
                 stay_repo: StayRepository,
                 detector: ConflictDetector,
                 allocator: RoomAllocator,
                 event_bus=None,
                 guest_directory: Optional[GuestDirectory] = None,
                 advance_booking_days: int = settings.ADVANCE_BOOKING_DAYS,
                 max_attempts: int = settings.MAX_COMMIT_ATTEMPTS):
        self.room_service = room_service
        self.booking_repo = booking_repo
        self.stay_repo = stay_repo
        self.detector = detector
        self.allocator = allocator
        self.event_bus = event_bus
        self.guest_directory = guest_directory
        self.advance_booking_days = advance_booking_days
        self.max_attempts = max_attempts

    async def create_booking(
        self,
        room_ref: RoomRef,
        guest: GuestInfo,
        check_in: date,
        check_out: date,
        guest_count: int = 1,
        tariff: Optional[Decimal] = None,
        override: Optional[UnavailableOverride] = None,
        special_requests: Optional[str] = None,
        booking_source: BookingSource = BookingSource.FRONT_DESK,
        created_by: str = "SYSTEM"
    ) -> Booking:
        """Create a confirmed booking; the room nights are claimed atomically"""
        date_range = validate_stay_request(guest, check_in, check_out, self.advance_booking_days)
        room = await self.room_service.resolve(room_ref)

        if room.is_blocked() and override is None:
            raise RoomUnavailable(room.room_number, room.status.value)

        booking = Booking(
            property_id=room.property_id,
            room_id=room.room_id,
            room_number=room.room_number,
            guest=guest,
            date_range=date_range,
            guest_count=guest_count,
            estimated_tariff=to_money(tariff if tariff is not None else room.tariff),
            special_requests=special_requests,
            booking_source=booking_source,
            unavailable_override=override,
            created_by=created_by
        )

        await self.allocator.claim(
            room, date_range, ConflictSource.BOOKING, booking.booking_id,
            include_maintenance=override is None
        )
        try:
            booking = await self.booking_repo.save(booking)
        except Exception:
            self.allocator.release(room.room_id, booking.booking_id)
            raise

        if date_range.check_in == date.today():
            await self.room_service.mutate_room(
                room.room_id, lambda r: r.mark_reserved(booking.booking_id)
            )

        if override is not None:
            logger.warning(
                f"Booking {booking.booking_id} on {room.status.value} room {room.room_number} "
                f"overridden by {override.authorized_by}: {override.reason}"
            )
        logger.info(
            f"Booking {booking.booking_id} created for room {room.room_number} "
            f"{check_in}..{check_out} by {created_by}"
        )
        return booking

    async def get_booking(self, booking_id: UUID) -> Booking:
        booking = await self.booking_repo.find_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking", booking_id)
        return booking

    async def list_bookings(self, property_id: str, status: Optional[BookingStatus] = None,
                            check_in: Optional[date] = None) -> List[Booking]:
        bookings = await self.booking_repo.find_by_property(property_id)
        if status is not None:
            bookings = [b for b in bookings if b.status == status]
        if check_in is not None:
            bookings = [b for b in bookings if b.date_range.check_in == check_in]
        return sorted(bookings, key=lambda b: (b.date_range.check_in, b.room_number))

    async def validate_overlap(
        self,
        room_ref: RoomRef,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[UUID] = None,
        include_maintenance: bool = True
    ) -> List[Conflict]:
        """Dry-run conflict check; writes nothing"""
        if check_out <= check_in:
            raise ValidationError("Check-out date must be after check-in date")
        room = await self.room_service.resolve(room_ref)
        return await self.detector.find_conflicts(
            room,
            DateRange(check_in=check_in, check_out=check_out),
            exclude_booking_id=exclude_booking_id,
            include_maintenance=include_maintenance
        )

    async def cancel_booking(self, booking_id: UUID, reason: str = "Guest requested cancellation",
                             cancelled_by: str = "SYSTEM") -> Booking:
        """Cancel a confirmed booking; cancelling twice is a no-op"""
        changed = False

        async def _attempt():
            nonlocal changed
            booking = await self.get_booking(booking_id)
            expected = booking.version
            changed = booking.cancel(reason, cancelled_by)
            if not changed:
                return booking
            return await self.booking_repo.update(booking, expected)

        booking = await commit_with_retry("Booking", booking_id, _attempt, self.max_attempts)
        if not changed:
            return booking

        self.allocator.release(booking.room_id, booking.booking_id)
        await self.room_service.mutate_room(
            booking.room_id, lambda r: r.clear_reservation(booking.booking_id)
        )
        logger.info(f"Booking {booking_id} cancelled by {cancelled_by}: {reason}")
        return booking

    async def convert_to_stay(
        self,
        booking_id: UUID,
        advance_payment: Decimal = Decimal("0"),
        payment_mode: PaymentMode = PaymentMode.CASH,
        id_proof: Optional[IdProof] = None,
        gst_info: Optional[GstInfo] = None,
        checked_in_by: str = "SYSTEM"
    ) -> Stay:
        """Check in the guest of a confirmed booking whose dates include today"""
        if advance_payment < 0:
            raise ValidationError("Advance payment cannot be negative")

        booking = await self.get_booking(booking_id)
        stay = Stay.from_booking(booking, advance_payment, payment_mode, id_proof, checked_in_by, gst_info)

        today = date.today()
        if booking.date_range.check_in > today:
            raise ValidationError(
                f"Booking {booking_id} starts on {booking.date_range.check_in}; "
                f"the guest cannot check in before that date"
            )
        if booking.date_range.check_out <= today:
            raise ValidationError(
                f"Booking {booking_id} ended on {booking.date_range.check_out}"
            )

        room = await self.room_service.resolve(RoomRef.by_id(booking.room_id))
        if room.is_held_by_other_stay(stay.stay_id):
            raise RoomUnavailable(
                room.room_number, room.status.value,
                f"Room {room.room_number} is still occupied by stay {room.active_stay_id}"
            )

        async def _attempt():
            current = await self.get_booking(booking_id)
            expected = current.version
            current.mark_checked_in(stay.stay_id)
            return await self.booking_repo.update(current, expected)

        # The loser of two concurrent conversions re-reads and fails as not confirmed
        await commit_with_retry("Booking", booking_id, _attempt, self.max_attempts)

        # The room snapshot may be stale; occupy re-checks under compare-and-set
        try:
            await self.room_service.mutate_room(room.room_id, lambda r: r.occupy(stay.stay_id) or True)
        except Exception:
            await self._revert_check_in(booking_id, stay.stay_id)
            raise

        stay = await self.stay_repo.save(stay)
        self.allocator.transfer(room.room_id, booking_id, stay.stay_id)

        logger.info(f"Booking {booking_id} checked in as stay {stay.stay_id} (room {stay.room_number})")
        if self.guest_directory is not None:
            await self.guest_directory.record_visit(stay, checked_in_by)
        _publish(self.event_bus, StayEvent.for_stay(
            EventType.GUEST_CHECKED_IN, stay, "BookingService", checked_in_by
        ))
        return stay

    async def _revert_check_in(self, booking_id: UUID, stay_id: UUID) -> None:
        async def _attempt():
            booking = await self.get_booking(booking_id)
            expected = booking.version
            if not booking.revert_check_in(stay_id):
                return booking
            return await self.booking_repo.update(booking, expected)

        await commit_with_retry("Booking", booking_id, _attempt, self.max_attempts)
        logger.warning(f"Check-in of booking {booking_id} rolled back; room could not be occupied")


def _publish(event_bus, event: StayEvent) -> None:
    if event_bus is not None:
        event_bus.publish(event)


# ============================================================================
# STAY LIFECYCLE
# ============================================================================

class StayService:
    """Service for walk-in check-in, order linking and checkout"""

    def __init__(self,
                 room_service: RoomService,
                 stay_repo: StayRepository,
                 allocator: RoomAllocator,
                 order_gateway: OrderGateway,
                 event_bus=None,
                 guest_directory: Optional[GuestDirectory] = None,
                 advance_booking_days: int = settings.ADVANCE_BOOKING_DAYS,
                 max_attempts: int = settings.MAX_COMMIT_ATTEMPTS):
        self.room_service = room_service
        self.stay_repo = stay_repo
        self.allocator = allocator
        self.order_gateway = order_gateway
        self.event_bus = event_bus
        self.guest_directory = guest_directory
        self.advance_booking_days = advance_booking_days
        self.max_attempts = max_attempts

    async def check_in(
        self,
        room_ref: RoomRef,
        guest: GuestInfo,
        check_in: date,
        check_out: date,
        guest_count: int = 1,
        room_tariff: Optional[Decimal] = None,
        advance_payment: Decimal = Decimal("0"),
        payment_mode: PaymentMode = PaymentMode.CASH,
        id_proof: Optional[IdProof] = None,
        override: Optional[UnavailableOverride] = None,
        special_requests: Optional[str] = None,
        checked_in_by: str = "SYSTEM",
        gst_info: Optional[GstInfo] = None
    ) -> Stay:
        """Walk-in check-in: a stay without a prior booking, starting today"""
        date_range = validate_stay_request(guest, check_in, check_out, self.advance_booking_days)
        if check_in != date.today():
            raise ValidationError("A walk-in check-in must start today; book future dates instead")
        if advance_payment < 0:
            raise ValidationError("Advance payment cannot be negative")

        room = await self.room_service.resolve(room_ref)
        if room.is_held_by_other_stay():
            raise RoomUnavailable(
                room.room_number, room.status.value,
                f"Room {room.room_number} is occupied by stay {room.active_stay_id}"
            )
        if room.is_blocked() and override is None:
            raise RoomUnavailable(room.room_number, room.status.value)

        stay = Stay(
            property_id=room.property_id,
            room_id=room.room_id,
            room_number=room.room_number,
            guest=guest,
            date_range=date_range,
            guest_count=guest_count,
            room_tariff=to_money(room_tariff if room_tariff is not None else room.tariff),
            advance_payment=to_money(advance_payment),
            payment_mode=payment_mode,
            id_proof=id_proof,
            gst_info=gst_info,
            special_requests=special_requests,
            unavailable_override=override,
            checked_in_by=checked_in_by
        )

        await self.allocator.claim(
            room, date_range, ConflictSource.STAY, stay.stay_id,
            include_maintenance=override is None
        )
        # Occupy before saving so a lost race leaves neither a stay nor held nights
        try:
            await self.room_service.mutate_room(room.room_id, lambda r: r.occupy(stay.stay_id) or True)
        except Exception:
            self.allocator.release(room.room_id, stay.stay_id)
            raise

        stay = await self.stay_repo.save(stay)

        logger.info(f"Walk-in stay {stay.stay_id} checked in to room {room.room_number} by {checked_in_by}")
        if self.guest_directory is not None:
            await self.guest_directory.record_visit(stay, checked_in_by)
        _publish(self.event_bus, StayEvent.for_stay(
            EventType.GUEST_CHECKED_IN, stay, "StayService", checked_in_by
        ))
        return stay

    async def get_stay(self, stay_id: UUID) -> Stay:
        stay = await self.stay_repo.find_by_id(stay_id)
        if stay is None:
            raise NotFound("Stay", stay_id)
        return stay

    async def list_stays(self, property_id: str, status: Optional[StayStatus] = None) -> List[Stay]:
        stays = await self.stay_repo.find_by_property(property_id)
        if status is not None:
            stays = [s for s in stays if s.status == status]
        return sorted(stays, key=lambda s: s.checked_in_at, reverse=True)

    async def get_active_stay_for_room(self, room_ref: RoomRef) -> Optional[Stay]:
        room = await self.room_service.resolve(room_ref)
        stays = await self.stay_repo.find_by_room(room.room_id, StayStatus.CHECKED_IN)
        return stays[0] if stays else None

    async def stay_history(self, property_id: str, start_date: Optional[date] = None,
                           end_date: Optional[date] = None, room_id: Optional[UUID] = None) -> List[Stay]:
        """Checked-out stays, newest first, filtered by checkout date (inclusive) and room"""
        history = []
        for stay in await self.stay_repo.find_by_property(property_id):
            if stay.status != StayStatus.CHECKED_OUT:
                continue
            checked_out_on = stay.checked_out_at.date()
            if start_date is not None and checked_out_on < start_date:
                continue
            if end_date is not None and checked_out_on > end_date:
                continue
            if room_id is not None and stay.room_id != room_id:
                continue
            history.append(stay)
        return sorted(history, key=lambda s: s.checked_out_at, reverse=True)

    async def update_stay(
        self,
        stay_id: UUID,
        guest: Optional[GuestInfo] = None,
        guest_count: Optional[int] = None,
        id_proof: Optional[IdProof] = None,
        gst_info: Optional[GstInfo] = None,
        special_requests: Optional[str] = None,
        updated_by: str = "SYSTEM"
    ) -> Stay:
        """Correct guest details of an active stay; dates and status are not editable here"""
        changed = False

        async def _attempt():
            nonlocal changed
            stay = await self.get_stay(stay_id)
            expected = stay.version
            changed = stay.update_details(
                guest=guest,
                guest_count=guest_count,
                id_proof=id_proof,
                gst_info=gst_info,
                special_requests=special_requests
            )
            if not changed:
                return stay
            return await self.stay_repo.update(stay, expected)

        stay = await commit_with_retry("Stay", stay_id, _attempt, self.max_attempts)
        if not changed:
            return stay

        logger.info(f"Stay {stay_id} details updated by {updated_by}")
        if self.guest_directory is not None and (guest is not None or id_proof is not None or gst_info is not None):
            await self.guest_directory.record_visit(stay, updated_by)
        return stay

    async def link_order(self, stay_id: UUID, order_id: str,
                         order_amount: Optional[Decimal] = None) -> LedgerTotals:
        """Bill an external order to the stay, exactly once"""
        stay = await self.get_stay(stay_id)
        if not stay.is_active():
            raise StayNotActive(stay_id)

        order = await self.order_gateway.get_order(order_id)
        if order is None:
            raise NotFound("Order", order_id)
        if order.is_billed:
            raise OrderAlreadyBilled(order_id, order.billed_via_stay_id)
        if stay.has_order(order_id):
            raise OrderAlreadyLinked(order_id, stay_id, totals=compute_ledger_totals(stay))
        if order.linked_to_stay_id is not None and order.linked_to_stay_id != stay_id:
            raise OrderAlreadyLinked(order_id, order.linked_to_stay_id)

        amount = order.amount if order.amount is not None else order_amount
        if amount is None:
            raise ValidationError(f"Order {order_id} has no amount; supply order_amount")
        amount = to_money(amount)
        if amount < 0:
            raise ValidationError("Order amount cannot be negative")

        # Claims the order for this stay; another stay's claim fails here.
        # Released again below if the ledger append does not commit.
        await self.order_gateway.mark_linked(order_id, stay_id)

        entry = LedgerEntry(
            order_id=order_id,
            amount=amount,
            order_status=order.status,
            payment_status=order.payment_status.value
        )

        async def _attempt():
            current = await self.get_stay(stay_id)
            if current.has_order(order_id):
                raise OrderAlreadyLinked(order_id, stay_id, totals=compute_ledger_totals(current))
            expected = current.version
            current.link_order(entry)
            return await self.stay_repo.update(current, expected)

        try:
            stay = await commit_with_retry("Stay", stay_id, _attempt, self.max_attempts)
        except Exception:
            await self._release_order_link(order_id, stay_id)
            raise

        totals = compute_ledger_totals(stay)
        logger.info(
            f"Order {order_id} ({amount}) linked to stay {stay_id}; "
            f"food charges now {totals.food_charges}"
        )
        return totals

    async def _release_order_link(self, order_id: str, stay_id: UUID) -> None:
        stay = await self.stay_repo.find_by_id(stay_id)
        if stay is not None and stay.has_order(order_id):
            return
        if await self.order_gateway.unmark_linked(order_id, stay_id):
            logger.warning(f"Order {order_id} unlinked from stay {stay_id}; ledger update did not commit")

    async def get_invoice(self, stay_id: UUID) -> Invoice:
        return compute_invoice(await self.get_stay(stay_id))

    async def checkout(
        self,
        stay_id: UUID,
        final_payment: Decimal = Decimal("0"),
        payment_mode: PaymentMode = PaymentMode.CASH,
        discounts: Optional[List[ChargeItem]] = None,
        additional_charges: Optional[List[ChargeItem]] = None,
        notes: Optional[str] = None,
        checked_out_by: str = "SYSTEM"
    ) -> Invoice:
        """Close the stay, bill its orders and release the room"""
        if final_payment < 0:
            raise ValidationError("Final payment cannot be negative")

        async def _attempt():
            stay = await self.get_stay(stay_id)
            expected = stay.version
            stay.check_out(
                final_payment=final_payment,
                payment_mode=payment_mode,
                discounts=discounts or [],
                additional_charges=additional_charges or [],
                notes=notes,
                checked_out_by=checked_out_by
            )
            return await self.stay_repo.update(stay, expected)

        stay = await commit_with_retry("Stay", stay_id, _attempt, self.max_attempts)

        order_ids = [entry.order_id for entry in stay.ledger]
        if order_ids:
            await self.order_gateway.mark_billed(order_ids, stay_id)

        await self.room_service.mutate_room(stay.room_id, lambda r: r.release(stay_id))
        self.allocator.release(stay.room_id, stay_id)

        invoice = compute_invoice(stay)
        logger.info(
            f"Stay {stay_id} checked out of room {stay.room_number}: "
            f"total {invoice.total}, balance {invoice.balance}, {len(order_ids)} order(s) billed"
        )
        _publish(self.event_bus, StayEvent.for_stay(
            EventType.GUEST_CHECKED_OUT, stay, "StayService", checked_out_by
        ))
        return invoice
