"""Domain Enums"""
from enum import Enum


class RoomStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    OCCUPIED = "OCCUPIED"
    CLEANING = "CLEANING"
    MAINTENANCE = "MAINTENANCE"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"


class BookingStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CANCELLED = "CANCELLED"


class StayStatus(str, Enum):
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"


class BookingSource(str, Enum):
    FRONT_DESK = "FRONT_DESK"
    WEBSITE = "WEBSITE"
    PHONE = "PHONE"
    OTA = "OTA"
    WALK_IN = "WALK_IN"


class PaymentMode(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    BANK_TRANSFER = "BANK_TRANSFER"
    ROOM_CREDIT = "ROOM_CREDIT"


class ConflictSource(str, Enum):
    BOOKING = "BOOKING"
    STAY = "STAY"
    MAINTENANCE = "MAINTENANCE"


class ScheduledStatus(str, Enum):
    """Calendar view of a room on a given date"""
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"
    OCCUPIED = "OCCUPIED"
    CLEANING = "CLEANING"
    MAINTENANCE = "MAINTENANCE"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"


class OrderPaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class Role(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    FRONT_DESK = "FRONT_DESK"
