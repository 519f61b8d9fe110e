"""Billing read models

Invoices and ledger totals are never persisted. They are rebuilt from the
stay's tariff snapshot, ledger, charges, discounts and payments on every read,
so a displayed bill cannot drift from its source records.
"""
from pydantic import BaseModel
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from domain.enums import StayStatus
from domain.value_objects import ChargeItem, LedgerEntry, to_money


class LedgerTotals(BaseModel):
    """Running totals returned when an order is linked to a stay"""
    stay_id: UUID
    order_count: int
    room_charges: Decimal
    food_charges: Decimal
    total_charges: Decimal
    advance_payment: Decimal
    balance: Decimal


class Invoice(BaseModel):
    """Full charge breakdown of a stay"""
    stay_id: UUID
    booking_id: Optional[UUID] = None
    guest_name: str
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    room_number: str
    check_in: date
    check_out: date
    actual_check_out_at: Optional[datetime] = None
    stay_duration: int
    room_tariff: Decimal

    room_charges: Decimal
    food_charges: Decimal
    additional_charges: List[ChargeItem]
    additional_total: Decimal
    discounts: List[ChargeItem]
    discount_total: Decimal
    subtotal: Decimal
    total: Decimal

    advance_payment: Decimal
    final_payment: Decimal
    total_paid: Decimal
    balance: Decimal

    status: StayStatus
    billing_complete: bool
    ledger: List[LedgerEntry]


def _sum(amounts) -> Decimal:
    return to_money(sum((Decimal(a) for a in amounts), Decimal("0")))


def room_charges_for(stay) -> Decimal:
    return to_money(stay.room_tariff * stay.stay_duration)


def compute_invoice(stay) -> Invoice:
    """total = room + food + additional - discounts; balance = total - paid"""
    room_charges = room_charges_for(stay)
    food_charges = _sum(entry.amount for entry in stay.ledger)
    additional_total = _sum(charge.amount for charge in stay.additional_charges)
    discount_total = _sum(discount.amount for discount in stay.discounts)

    subtotal = room_charges + food_charges + additional_total
    total = subtotal - discount_total
    total_paid = to_money(stay.advance_payment + stay.final_payment)
    balance = total - total_paid

    return Invoice(
        stay_id=stay.stay_id,
        booking_id=stay.booking_id,
        guest_name=stay.guest.name,
        guest_phone=stay.guest.phone,
        guest_email=stay.guest.email,
        room_number=stay.room_number,
        check_in=stay.date_range.check_in,
        check_out=stay.date_range.check_out,
        actual_check_out_at=stay.checked_out_at,
        stay_duration=stay.stay_duration,
        room_tariff=stay.room_tariff,
        room_charges=room_charges,
        food_charges=food_charges,
        additional_charges=list(stay.additional_charges),
        additional_total=additional_total,
        discounts=list(stay.discounts),
        discount_total=discount_total,
        subtotal=subtotal,
        total=total,
        advance_payment=to_money(stay.advance_payment),
        final_payment=to_money(stay.final_payment),
        total_paid=total_paid,
        balance=balance,
        status=stay.status,
        billing_complete=stay.status == StayStatus.CHECKED_OUT and balance <= 0,
        ledger=list(stay.ledger)
    )


def compute_ledger_totals(stay) -> LedgerTotals:
    invoice = compute_invoice(stay)
    return LedgerTotals(
        stay_id=stay.stay_id,
        order_count=len(stay.ledger),
        room_charges=invoice.room_charges,
        food_charges=invoice.food_charges,
        total_charges=invoice.total,
        advance_payment=invoice.advance_payment,
        balance=invoice.balance
    )
