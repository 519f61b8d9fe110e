"""Conflict detection and room-night allocation"""
from uuid import UUID
from datetime import timedelta
from typing import List, Optional
import logging

from domain.entities import Room
from domain.enums import BookingStatus, StayStatus, ConflictSource
from domain.errors import BookingConflict
from domain.repositories import (
    BookingRepository, StayRepository, MaintenanceRepository, RoomNightRegistry
)
from domain.value_objects import Conflict, DateRange

logger = logging.getLogger(__name__)


class ConflictDetector:
    """Finds bookings, stays and maintenance blocks overlapping a candidate interval"""

    def __init__(self,
                 booking_repo: BookingRepository,
                 stay_repo: StayRepository,
                 maintenance_repo: MaintenanceRepository):
        self.booking_repo = booking_repo
        self.stay_repo = stay_repo
        self.maintenance_repo = maintenance_repo

    async def find_conflicts(
        self,
        room: Room,
        candidate: DateRange,
        exclude_booking_id: Optional[UUID] = None,
        include_maintenance: bool = True
    ) -> List[Conflict]:
        """Empty list means the room is free for the whole candidate interval"""
        conflicts: List[Conflict] = []

        stays = await self.stay_repo.find_by_room(room.room_id)
        active_stays = [s for s in stays if s.status == StayStatus.CHECKED_IN]
        closed_stay_ids = {s.stay_id for s in stays if s.status == StayStatus.CHECKED_OUT}

        bookings = await self.booking_repo.find_by_room(
            room.room_id, [BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN]
        )
        active_stay_ids = {s.stay_id for s in active_stays}
        for booking in bookings:
            if exclude_booking_id is not None and booking.booking_id == exclude_booking_id:
                continue
            # A checked-in booking is represented by its stay from here on
            if booking.stay_id in active_stay_ids or booking.stay_id in closed_stay_ids:
                continue
            if booking.date_range.overlaps(candidate):
                conflicts.append(Conflict(
                    source=ConflictSource.BOOKING,
                    id=booking.booking_id,
                    guest_name=booking.guest.name,
                    check_in=booking.date_range.check_in,
                    check_out=booking.date_range.check_out,
                    reason=f"Booked ({booking.status.value})"
                ))

        for stay in active_stays:
            if stay.date_range.overlaps(candidate):
                conflicts.append(Conflict(
                    source=ConflictSource.STAY,
                    id=stay.stay_id,
                    guest_name=stay.guest.name,
                    check_in=stay.date_range.check_in,
                    check_out=stay.date_range.check_out,
                    reason="Guest checked in"
                ))

        if include_maintenance:
            for schedule in await self.maintenance_repo.find_by_room(room.room_id):
                blocked = schedule.blocked_range
                if blocked.overlaps(candidate):
                    conflicts.append(Conflict(
                        source=ConflictSource.MAINTENANCE,
                        id=schedule.maintenance_id,
                        check_in=blocked.check_in,
                        check_out=blocked.check_out,
                        reason=schedule.reason
                    ))

        return conflicts


class RoomAllocator:
    """Check-then-commit guard for a room interval

    The detector gives the caller a readable conflict list; the room-night
    registry is what actually decides. Claiming every night of the interval
    is all-or-nothing, so of two overlapping requests that both passed
    detection only one can hold the nights.
    """

    def __init__(self, detector: ConflictDetector, registry: RoomNightRegistry,
                 booking_repo: BookingRepository, stay_repo: StayRepository):
        self.detector = detector
        self.registry = registry
        self.booking_repo = booking_repo
        self.stay_repo = stay_repo

    async def ensure_free(self, room: Room, candidate: DateRange,
                          include_maintenance: bool = True,
                          exclude_booking_id: Optional[UUID] = None) -> None:
        conflicts = await self.detector.find_conflicts(
            room, candidate, exclude_booking_id=exclude_booking_id,
            include_maintenance=include_maintenance
        )
        if conflicts:
            logger.warning(
                f"Room {room.room_number} {candidate.check_in}..{candidate.check_out} "
                f"rejected: {len(conflicts)} conflict(s)"
            )
            raise BookingConflict(conflicts)

    async def claim(self, room: Room, candidate: DateRange, holder_kind: ConflictSource,
                    holder_id: UUID, include_maintenance: bool = True) -> None:
        """Detect, then claim every night; raises BookingConflict on either failure"""
        await self.ensure_free(room, candidate, include_maintenance=include_maintenance)

        if self.registry.claim(room.room_id, candidate.each_night(), holder_kind, holder_id):
            return

        logger.warning(
            f"Room {room.room_number} nights {candidate.check_in}..{candidate.check_out} "
            f"claimed concurrently by another request"
        )
        conflicts = await self.detector.find_conflicts(
            room, candidate, include_maintenance=include_maintenance
        )
        if not conflicts:
            conflicts = await self._conflicts_from_claims(room, candidate)
        raise BookingConflict(conflicts)

    def transfer(self, room_id: UUID, booking_id: UUID, stay_id: UUID) -> int:
        return self.registry.transfer(room_id, booking_id, ConflictSource.STAY, stay_id)

    def release(self, room_id: UUID, holder_id: UUID) -> int:
        return self.registry.release(room_id, holder_id)

    async def _conflicts_from_claims(self, room: Room, candidate: DateRange) -> List[Conflict]:
        """Conflicts built from registry holders whose records may not be saved yet"""
        nights_by_holder = {}
        for night, kind, holder_id in self.registry.holders(room.room_id, candidate.each_night()):
            nights_by_holder.setdefault((kind, holder_id), []).append(night)

        conflicts = []
        for (kind, holder_id), nights in nights_by_holder.items():
            if kind == ConflictSource.BOOKING:
                record = await self.booking_repo.find_by_id(holder_id)
            else:
                record = await self.stay_repo.find_by_id(holder_id)

            if record is not None:
                check_in, check_out = record.date_range.check_in, record.date_range.check_out
                guest_name = record.guest.name
            else:
                check_in = min(nights)
                check_out = max(nights) + timedelta(days=1)
                guest_name = None

            conflicts.append(Conflict(
                source=kind,
                id=holder_id,
                guest_name=guest_name,
                check_in=check_in,
                check_out=check_out,
                reason="Room nights already claimed"
            ))
        return conflicts
