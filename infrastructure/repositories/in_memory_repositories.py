"""In-Memory Repository Implementations

Stored aggregates are copies: callers only change stored state through
`update(entity, expected_version)`, which is a compare-and-set guarded by a
lock so concurrent writers (threads or tasks) cannot interleave.
"""
from typing import Optional, List, Dict, Iterable, Tuple
from uuid import UUID
from datetime import date, datetime, timezone
import threading

from domain.repositories import (
    RoomRepository, MaintenanceRepository, BookingRepository, StayRepository, GuestRepository,
    OrderGateway, RoomNightRegistry
)
from domain.entities import Room, MaintenanceSchedule, Booking, Stay, Guest, Order
from domain.enums import BookingStatus, StayStatus, ConflictSource, OrderPaymentStatus
from domain.errors import (
    ValidationError, NotFound, ConcurrencyConflict, OrderAlreadyLinked, OrderAlreadyBilled
)


class _VersionedStore:
    """Dict of aggregates keyed by id with compare-and-set updates"""

    def __init__(self, entity_name: str, id_field: str):
        self._entity_name = entity_name
        self._id_field = id_field
        self._storage: Dict = {}
        self._lock = threading.Lock()

    def _key(self, entity):
        return getattr(entity, self._id_field)

    def insert(self, entity):
        with self._lock:
            key = self._key(entity)
            if key in self._storage:
                raise ValidationError(f"{self._entity_name} already exists: {key}")
            self._storage[key] = entity.model_copy(deep=True)
        return entity.model_copy(deep=True)

    def get(self, key):
        with self._lock:
            entity = self._storage.get(key)
            return entity.model_copy(deep=True) if entity is not None else None

    def select(self, predicate) -> List:
        with self._lock:
            return [e.model_copy(deep=True) for e in self._storage.values() if predicate(e)]

    def compare_and_set(self, entity, expected_version: int):
        with self._lock:
            key = self._key(entity)
            current = self._storage.get(key)
            if current is None:
                raise NotFound(self._entity_name, key)
            if current.version != expected_version:
                raise ConcurrencyConflict(self._entity_name, key)
            self._storage[key] = entity.model_copy(deep=True)
        return entity.model_copy(deep=True)

    def remove(self, key) -> bool:
        with self._lock:
            return self._storage.pop(key, None) is not None


class InMemoryRoomRepository(RoomRepository):
    """In-memory implementation of RoomRepository"""

    def __init__(self):
        self._store = _VersionedStore("Room", "room_id")
        self._number_lock = threading.Lock()

    async def save(self, room: Room) -> Room:
        """Save room; room numbers are unique per property"""
        with self._number_lock:
            existing = self._store.select(
                lambda r: r.property_id == room.property_id and r.room_number == room.room_number
            )
            if existing:
                raise ValidationError(
                    f"Room {room.room_number} already exists in property {room.property_id}"
                )
            return self._store.insert(room)

    async def find_by_id(self, room_id: UUID) -> Optional[Room]:
        return self._store.get(room_id)

    async def find_by_number(self, property_id: str, room_number: str) -> Optional[Room]:
        rooms = self._store.select(
            lambda r: r.property_id == property_id and r.room_number == room_number
        )
        return rooms[0] if rooms else None

    async def find_by_property(self, property_id: str) -> List[Room]:
        return self._store.select(lambda r: r.property_id == property_id)

    async def update(self, room: Room, expected_version: int) -> Room:
        return self._store.compare_and_set(room, expected_version)

    async def delete(self, room_id: UUID) -> bool:
        return self._store.remove(room_id)


class InMemoryMaintenanceRepository(MaintenanceRepository):
    """In-memory implementation of MaintenanceRepository"""

    def __init__(self):
        self._store = _VersionedStore("MaintenanceSchedule", "maintenance_id")

    async def save(self, schedule: MaintenanceSchedule) -> MaintenanceSchedule:
        return self._store.insert(schedule)

    async def find_by_room(self, room_id: UUID, active_only: bool = True) -> List[MaintenanceSchedule]:
        schedules = self._store.select(
            lambda m: m.room_id == room_id and (m.active or not active_only)
        )
        return sorted(schedules, key=lambda m: m.start_date)

    async def update(self, schedule: MaintenanceSchedule, expected_version: int) -> MaintenanceSchedule:
        return self._store.compare_and_set(schedule, expected_version)


class InMemoryBookingRepository(BookingRepository):
    """In-memory implementation of BookingRepository"""

    def __init__(self):
        self._store = _VersionedStore("Booking", "booking_id")

    async def save(self, booking: Booking) -> Booking:
        return self._store.insert(booking)

    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        return self._store.get(booking_id)

    async def find_by_room(self, room_id: UUID, statuses: Optional[Iterable[BookingStatus]] = None) -> List[Booking]:
        wanted = set(statuses) if statuses is not None else None
        return self._store.select(
            lambda b: b.room_id == room_id and (wanted is None or b.status in wanted)
        )

    async def find_by_property(self, property_id: str) -> List[Booking]:
        return self._store.select(lambda b: b.property_id == property_id)

    async def update(self, booking: Booking, expected_version: int) -> Booking:
        return self._store.compare_and_set(booking, expected_version)


class InMemoryStayRepository(StayRepository):
    """In-memory implementation of StayRepository"""

    def __init__(self):
        self._store = _VersionedStore("Stay", "stay_id")

    async def save(self, stay: Stay) -> Stay:
        return self._store.insert(stay)

    async def find_by_id(self, stay_id: UUID) -> Optional[Stay]:
        return self._store.get(stay_id)

    async def find_by_room(self, room_id: UUID, status: Optional[StayStatus] = None) -> List[Stay]:
        return self._store.select(
            lambda s: s.room_id == room_id and (status is None or s.status == status)
        )

    async def find_by_property(self, property_id: str) -> List[Stay]:
        return self._store.select(lambda s: s.property_id == property_id)

    async def update(self, stay: Stay, expected_version: int) -> Stay:
        return self._store.compare_and_set(stay, expected_version)


class InMemoryGuestRepository(GuestRepository):
    """In-memory implementation of GuestRepository"""

    def __init__(self):
        self._store = _VersionedStore("Guest", "guest_id")

    async def save(self, guest: Guest) -> Guest:
        return self._store.insert(guest)

    async def find_by_id(self, guest_id: UUID) -> Optional[Guest]:
        return self._store.get(guest_id)

    async def find_by_property(self, property_id: str) -> List[Guest]:
        return self._store.select(lambda g: g.property_id == property_id)

    async def update(self, guest: Guest, expected_version: int) -> Guest:
        return self._store.compare_and_set(guest, expected_version)


class InMemoryOrderGateway(OrderGateway):
    """Local mirror of point-of-sale orders with atomic flag writes"""

    def __init__(self):
        self._storage: Dict[str, Order] = {}
        self._lock = threading.Lock()

    async def get_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self._storage.get(order_id)
            return order.model_copy(deep=True) if order is not None else None

    async def register_order(self, order: Order) -> Order:
        """Insert or refresh an order; link and billing flags written here are kept"""
        with self._lock:
            current = self._storage.get(order.order_id)
            if current is not None:
                order = current.model_copy(update={
                    "property_id": order.property_id or current.property_id,
                    "amount": order.amount,
                    "status": order.status,
                    "payment_status": (
                        current.payment_status if current.is_billed else order.payment_status
                    ),
                    "version": current.version + 1
                })
            self._storage[order.order_id] = order.model_copy(deep=True)
            return order.model_copy(deep=True)

    async def mark_linked(self, order_id: str, stay_id: UUID) -> Order:
        with self._lock:
            order = self._storage.get(order_id)
            if order is None:
                raise NotFound("Order", order_id)
            if order.is_billed:
                raise OrderAlreadyBilled(order_id, order.billed_via_stay_id)
            if order.linked_to_stay_id is not None and order.linked_to_stay_id != stay_id:
                raise OrderAlreadyLinked(order_id, order.linked_to_stay_id)

            if order.linked_to_stay_id is None:
                order = order.model_copy(update={
                    "linked_to_stay_id": stay_id,
                    "linked_at": datetime.now(timezone.utc),
                    "version": order.version + 1
                })
                self._storage[order_id] = order
            return order.model_copy(deep=True)

    async def unmark_linked(self, order_id: str, stay_id: UUID) -> bool:
        with self._lock:
            order = self._storage.get(order_id)
            if order is None or order.is_billed or order.linked_to_stay_id != stay_id:
                return False
            self._storage[order_id] = order.model_copy(update={
                "linked_to_stay_id": None,
                "linked_at": None,
                "version": order.version + 1
            })
            return True

    async def mark_billed(self, order_ids: List[str], stay_id: UUID) -> List[Order]:
        with self._lock:
            # Validate the whole batch before writing any of it
            for order_id in order_ids:
                order = self._storage.get(order_id)
                if order is None:
                    raise NotFound("Order", order_id)
                if order.is_billed and order.billed_via_stay_id != stay_id:
                    raise OrderAlreadyBilled(order_id, order.billed_via_stay_id)

            billed_at = datetime.now(timezone.utc)
            updated = []
            for order_id in order_ids:
                order = self._storage[order_id]
                if not order.is_billed:
                    order = order.model_copy(update={
                        "billed_via_stay_id": stay_id,
                        "billed_at": billed_at,
                        "payment_status": OrderPaymentStatus.PAID,
                        "paid_via": "hotel-checkout",
                        "version": order.version + 1
                    })
                    self._storage[order_id] = order
                updated.append(order.model_copy(deep=True))
            return updated


class InMemoryRoomNightRegistry(RoomNightRegistry):
    """(room, night) -> (holder kind, holder id), mutated under one lock"""

    def __init__(self):
        self._nights: Dict[UUID, Dict[date, Tuple[ConflictSource, UUID]]] = {}
        self._lock = threading.Lock()

    def claim(self, room_id: UUID, nights: Iterable[date], holder_kind: ConflictSource, holder_id: UUID) -> bool:
        nights = list(nights)
        with self._lock:
            taken = self._nights.setdefault(room_id, {})
            for night in nights:
                holder = taken.get(night)
                if holder is not None and holder[1] != holder_id:
                    return False
            for night in nights:
                taken[night] = (holder_kind, holder_id)
            return True

    def transfer(self, room_id: UUID, from_id: UUID, to_kind: ConflictSource, to_id: UUID) -> int:
        with self._lock:
            taken = self._nights.get(room_id, {})
            moved = [night for night, holder in taken.items() if holder[1] == from_id]
            for night in moved:
                taken[night] = (to_kind, to_id)
            return len(moved)

    def release(self, room_id: UUID, holder_id: UUID) -> int:
        with self._lock:
            taken = self._nights.get(room_id, {})
            released = [night for night, holder in taken.items() if holder[1] == holder_id]
            for night in released:
                del taken[night]
            return len(released)

    def holders(self, room_id: UUID, nights: Iterable[date]) -> List[Tuple[date, ConflictSource, UUID]]:
        with self._lock:
            taken = self._nights.get(room_id, {})
            return [
                (night, taken[night][0], taken[night][1])
                for night in nights if night in taken
            ]
