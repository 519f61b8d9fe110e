"""Domain Repository Interfaces

Every `update` is a compare-and-set: it succeeds only when the stored
version equals `expected_version` and raises ConcurrencyConflict otherwise.
"""
from abc import ABC, abstractmethod
from typing import Optional, List, Iterable, Tuple
from uuid import UUID
from datetime import date

from domain.entities import Room, MaintenanceSchedule, Booking, Stay, Guest, Order
from domain.enums import BookingStatus, StayStatus, ConflictSource


class RoomRepository(ABC):
    """Repository interface for Room Aggregate"""

    @abstractmethod
    async def save(self, room: Room) -> Room:
        """Save a new room"""
        pass

    @abstractmethod
    async def find_by_id(self, room_id: UUID) -> Optional[Room]:
        pass

    @abstractmethod
    async def find_by_number(self, property_id: str, room_number: str) -> Optional[Room]:
        pass

    @abstractmethod
    async def find_by_property(self, property_id: str) -> List[Room]:
        pass

    @abstractmethod
    async def update(self, room: Room, expected_version: int) -> Room:
        """Update room if nobody else changed it since `expected_version`"""
        pass

    @abstractmethod
    async def delete(self, room_id: UUID) -> bool:
        pass


class MaintenanceRepository(ABC):
    """Repository interface for MaintenanceSchedule"""

    @abstractmethod
    async def save(self, schedule: MaintenanceSchedule) -> MaintenanceSchedule:
        pass

    @abstractmethod
    async def find_by_room(self, room_id: UUID, active_only: bool = True) -> List[MaintenanceSchedule]:
        pass

    @abstractmethod
    async def update(self, schedule: MaintenanceSchedule, expected_version: int) -> MaintenanceSchedule:
        pass


class BookingRepository(ABC):
    """Repository interface for Booking Aggregate"""

    @abstractmethod
    async def save(self, booking: Booking) -> Booking:
        pass

    @abstractmethod
    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        pass

    @abstractmethod
    async def find_by_room(self, room_id: UUID, statuses: Optional[Iterable[BookingStatus]] = None) -> List[Booking]:
        """Find bookings of a room, optionally restricted to some statuses"""
        pass

    @abstractmethod
    async def find_by_property(self, property_id: str) -> List[Booking]:
        pass

    @abstractmethod
    async def update(self, booking: Booking, expected_version: int) -> Booking:
        pass


class StayRepository(ABC):
    """Repository interface for Stay Aggregate"""

    @abstractmethod
    async def save(self, stay: Stay) -> Stay:
        pass

    @abstractmethod
    async def find_by_id(self, stay_id: UUID) -> Optional[Stay]:
        pass

    @abstractmethod
    async def find_by_room(self, room_id: UUID, status: Optional[StayStatus] = None) -> List[Stay]:
        pass

    @abstractmethod
    async def find_by_property(self, property_id: str) -> List[Stay]:
        pass

    @abstractmethod
    async def update(self, stay: Stay, expected_version: int) -> Stay:
        pass


class GuestRepository(ABC):
    """Repository interface for the guest directory"""

    @abstractmethod
    async def save(self, guest: Guest) -> Guest:
        pass

    @abstractmethod
    async def find_by_id(self, guest_id: UUID) -> Optional[Guest]:
        pass

    @abstractmethod
    async def find_by_property(self, property_id: str) -> List[Guest]:
        pass

    @abstractmethod
    async def update(self, guest: Guest, expected_version: int) -> Guest:
        pass


class OrderGateway(ABC):
    """Port to the external order / point-of-sale system"""

    @abstractmethod
    async def get_order(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def register_order(self, order: Order) -> Order:
        """Mirror an order created by the point-of-sale system"""
        pass

    @abstractmethod
    async def mark_linked(self, order_id: str, stay_id: UUID) -> Order:
        """Flag the order as linked; fails with OrderAlreadyLinked for another stay"""
        pass

    @abstractmethod
    async def unmark_linked(self, order_id: str, stay_id: UUID) -> bool:
        """Clear the link flag if `stay_id` holds it and the order is not billed"""
        pass

    @abstractmethod
    async def mark_billed(self, order_ids: List[str], stay_id: UUID) -> List[Order]:
        """Mark every order paid via the stay's checkout, all or none"""
        pass


class RoomNightRegistry(ABC):
    """Authoritative ownership of (room, night) pairs

    Claims are all-or-nothing: either every requested night becomes owned by
    the holder or none does.
    """

    @abstractmethod
    def claim(self, room_id: UUID, nights: Iterable[date], holder_kind: ConflictSource, holder_id: UUID) -> bool:
        pass

    @abstractmethod
    def transfer(self, room_id: UUID, from_id: UUID, to_kind: ConflictSource, to_id: UUID) -> int:
        """Move every night held by `from_id` to a new holder; returns the count"""
        pass

    @abstractmethod
    def release(self, room_id: UUID, holder_id: UUID) -> int:
        pass

    @abstractmethod
    def holders(self, room_id: UUID, nights: Iterable[date]) -> List[Tuple[date, ConflictSource, UUID]]:
        """Current holders of the given nights (only nights that are taken)"""
        pass
