"""Domain Errors

Every failure of the engine is a DomainError scoped to the single request.
DomainError extends ValueError so callers that only know about ValueError
keep working.
"""
from datetime import date
from typing import List, Optional
from uuid import UUID


class DomainError(ValueError):
    """Base class for typed engine failures"""
    code = "DOMAIN_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(DomainError):
    """Bad input rejected before any read (date range, guest name, amounts)"""
    code = "VALIDATION_ERROR"


class NotFound(DomainError):
    code = "NOT_FOUND"

    def __init__(self, entity: str, identifier):
        super().__init__(f"{entity} not found: {identifier}")
        self.entity = entity
        self.identifier = identifier


class RoomUnavailable(DomainError):
    """Room is blocked (maintenance / out of service) or held by another stay"""
    code = "ROOM_UNAVAILABLE"

    def __init__(self, room_number: str, room_status: str, message: Optional[str] = None):
        super().__init__(
            message or
            f"Room {room_number} is currently marked as {room_status}. "
            f"An authorized override is required to book it anyway."
        )
        self.room_number = room_number
        self.room_status = room_status

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["room_status"] = self.room_status
        return data


class BookingTooFarAhead(DomainError):
    code = "BOOKING_TOO_FAR_AHEAD"

    def __init__(self, check_in: date, max_days: int):
        super().__init__(f"Cannot book more than {max_days} days in advance (check-in {check_in})")
        self.check_in = check_in
        self.max_days = max_days


class BookingConflict(DomainError):
    """Candidate interval overlaps existing bookings, stays or maintenance"""
    code = "BOOKING_CONFLICT"

    def __init__(self, conflicts: List, message: str = "Room is already booked for these dates"):
        super().__init__(message)
        self.conflicts = list(conflicts)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["conflicts"] = [c.model_dump(mode="json") for c in self.conflicts]
        return data


class BookingNotConfirmed(DomainError):
    code = "BOOKING_NOT_CONFIRMED"

    def __init__(self, booking_id: UUID, status: str, action: str = "check in"):
        super().__init__(f"Cannot {action} booking {booking_id} with status {status}")
        self.booking_id = booking_id
        self.status = status


class StayNotActive(DomainError):
    code = "STAY_NOT_ACTIVE"

    def __init__(self, stay_id: UUID):
        super().__init__(f"Stay {stay_id} has already checked out")
        self.stay_id = stay_id


class OrderAlreadyLinked(DomainError):
    """Order is already on a ledger; `totals` holds the prior result when it is this stay's"""
    code = "ORDER_ALREADY_LINKED"

    def __init__(self, order_id: str, stay_id: UUID, totals=None):
        super().__init__(f"Order {order_id} is already linked to stay {stay_id}")
        self.order_id = order_id
        self.stay_id = stay_id
        self.totals = totals

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["stay_id"] = str(self.stay_id)
        if self.totals is not None:
            data["totals"] = self.totals.model_dump(mode="json")
        return data


class OrderAlreadyBilled(DomainError):
    code = "ORDER_ALREADY_BILLED"

    def __init__(self, order_id: str, stay_id):
        super().__init__(f"Order {order_id} was already billed and checked out via stay {stay_id}")
        self.order_id = order_id
        self.stay_id = stay_id


class ConcurrencyConflict(DomainError):
    """Transient: a compare-and-set write lost against a concurrent writer"""
    code = "CONCURRENCY_CONFLICT"

    def __init__(self, entity: str, identifier, attempts: int = 1):
        super().__init__(
            f"{entity} {identifier} was modified concurrently "
            f"(gave up after {attempts} attempt(s)); retry the operation"
        )
        self.entity = entity
        self.identifier = identifier
        self.attempts = attempts
