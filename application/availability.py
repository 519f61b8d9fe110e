"""Availability Aggregator - room status on a date and monthly occupancy"""
from pydantic import BaseModel
from uuid import UUID
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional
import calendar
import logging

from domain.entities import Room, Booking, Stay, MaintenanceSchedule
from domain.enums import RoomStatus, BookingStatus, StayStatus, ScheduledStatus
from domain.errors import ValidationError
from domain.repositories import (
    RoomRepository, BookingRepository, StayRepository, MaintenanceRepository
)
from application.services import room_sort_key, number_sort_key

logger = logging.getLogger(__name__)

# Persisted room statuses that show through when no stay or maintenance covers the date
_STICKY_ROOM_STATUSES = {
    RoomStatus.CLEANING: ScheduledStatus.CLEANING,
    RoomStatus.MAINTENANCE: ScheduledStatus.MAINTENANCE,
    RoomStatus.OUT_OF_SERVICE: ScheduledStatus.OUT_OF_SERVICE,
}


class RoomAvailability(BaseModel):
    """One room's status on a given date"""
    room_id: UUID
    room_number: str
    room_type: str
    floor: str
    tariff: Decimal
    room_status: RoomStatus
    current_status: ScheduledStatus
    scheduled_status: ScheduledStatus
    stay_id: Optional[UUID] = None
    booking_id: Optional[UUID] = None
    guest_name: Optional[str] = None
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    maintenance_reason: Optional[str] = None


class AvailabilitySummary(BaseModel):
    total: int = 0
    available: int = 0
    occupied: int = 0
    booked: int = 0
    cleaning: int = 0
    maintenance: int = 0
    out_of_service: int = 0


class AvailabilityReport(BaseModel):
    property_id: str
    on_date: date
    rooms: List[RoomAvailability]
    summary: AvailabilitySummary


class DaySummary(BaseModel):
    """Occupancy of one calendar day"""
    day: date
    booking_count: int
    stay_count: int
    booking_only_count: int
    occupancy_rate: float
    available_rooms: int
    occupied_room_numbers: List[str]


class AvailabilityService:
    """Read-only aggregation over rooms, bookings, stays and maintenance"""

    def __init__(self,
                 room_repo: RoomRepository,
                 booking_repo: BookingRepository,
                 stay_repo: StayRepository,
                 maintenance_repo: MaintenanceRepository):
        self.room_repo = room_repo
        self.booking_repo = booking_repo
        self.stay_repo = stay_repo
        self.maintenance_repo = maintenance_repo

    async def room_availability(self, property_id: str, on_date: date) -> AvailabilityReport:
        rooms = await self.room_repo.find_by_property(property_id)
        active_stays = [
            s for s in await self.stay_repo.find_by_property(property_id)
            if s.status == StayStatus.CHECKED_IN
        ]
        confirmed = [
            b for b in await self.booking_repo.find_by_property(property_id)
            if b.status == BookingStatus.CONFIRMED
        ]

        rows = []
        for room in sorted(rooms, key=room_sort_key):
            schedules = await self.maintenance_repo.find_by_room(room.room_id)
            rows.append(self._room_row(room, on_date, active_stays, confirmed, schedules))

        return AvailabilityReport(
            property_id=property_id,
            on_date=on_date,
            rooms=rows,
            summary=_summarize(rows)
        )

    def _room_row(self, room: Room, on_date: date, active_stays: List[Stay],
                  confirmed: List[Booking], schedules: List[MaintenanceSchedule]) -> RoomAvailability:
        stay = next(
            (s for s in active_stays if s.room_id == room.room_id and s.date_range.covers(on_date)),
            None
        )
        schedule = next((m for m in schedules if m.covers(on_date)), None)
        booking = next(
            (b for b in confirmed if b.room_id == room.room_id and b.date_range.covers(on_date)),
            None
        )

        if stay is not None:
            current = ScheduledStatus.OCCUPIED
        elif schedule is not None:
            current = ScheduledStatus.MAINTENANCE
        elif room.status in _STICKY_ROOM_STATUSES:
            current = _STICKY_ROOM_STATUSES[room.status]
        else:
            current = ScheduledStatus.AVAILABLE

        # Calendar view: same chain, with a covering booking before available
        scheduled = current
        if current == ScheduledStatus.AVAILABLE and booking is not None:
            scheduled = ScheduledStatus.BOOKED

        holder = stay if stay is not None else booking
        return RoomAvailability(
            room_id=room.room_id,
            room_number=room.room_number,
            room_type=room.room_type,
            floor=room.floor,
            tariff=room.tariff,
            room_status=room.status,
            current_status=current,
            scheduled_status=scheduled,
            stay_id=stay.stay_id if stay is not None else None,
            booking_id=booking.booking_id if booking is not None else None,
            guest_name=holder.guest.name if holder is not None else None,
            check_in=holder.date_range.check_in if holder is not None else None,
            check_out=holder.date_range.check_out if holder is not None else None,
            maintenance_reason=schedule.reason if schedule is not None else None
        )

    async def month_summary(self, property_id: str, month: int, year: int) -> Dict[date, DaySummary]:
        """Per-day booking count and occupancy for a calendar month

        A booking that was checked in is counted once, through its stay.
        """
        if not 1 <= month <= 12:
            raise ValidationError("Month must be between 1 and 12")
        if year < 1:
            raise ValidationError("Year must be positive")

        total_rooms = len(await self.room_repo.find_by_property(property_id))
        bookings = [
            b for b in await self.booking_repo.find_by_property(property_id)
            if b.status == BookingStatus.CONFIRMED
        ]
        stays = await self.stay_repo.find_by_property(property_id)

        first = date(year, month, 1)
        days_in_month = calendar.monthrange(year, month)[1]
        summary: Dict[date, DaySummary] = {}
        for offset in range(days_in_month):
            day = first + timedelta(days=offset)
            day_bookings = [b for b in bookings if b.date_range.covers(day)]
            day_stays = [s for s in stays if s.date_range.covers(day)]
            rooms_taken = {b.room_number for b in day_bookings} | {s.room_number for s in day_stays}

            occupancy = round(len(rooms_taken) / total_rooms * 100, 1) if total_rooms else 0.0
            summary[day] = DaySummary(
                day=day,
                booking_count=len(day_bookings) + len(day_stays),
                stay_count=len(day_stays),
                booking_only_count=len(day_bookings),
                occupancy_rate=occupancy,
                available_rooms=max(0, total_rooms - len(rooms_taken)),
                occupied_room_numbers=sorted(rooms_taken, key=number_sort_key)
            )

        logger.debug(f"Month summary computed for {property_id} {year}-{month:02d}")
        return summary


def _summarize(rows: List[RoomAvailability]) -> AvailabilitySummary:
    summary = AvailabilitySummary(total=len(rows))
    field_by_status = {
        ScheduledStatus.AVAILABLE: "available",
        ScheduledStatus.OCCUPIED: "occupied",
        ScheduledStatus.BOOKED: "booked",
        ScheduledStatus.CLEANING: "cleaning",
        ScheduledStatus.MAINTENANCE: "maintenance",
        ScheduledStatus.OUT_OF_SERVICE: "out_of_service",
    }
    for row in rows:
        name = field_by_status[row.scheduled_status]
        setattr(summary, name, getattr(summary, name) + 1)
    return summary
