"""Time-based cancellation and rescheduling rules shown to clients.

Advisory only: the figures describe what the practice charges or refunds,
nothing here moves money.
"""

import math
from datetime import datetime
from decimal import Decimal
from typing import NamedTuple

from booking.core.timeutils import to_naive_utc
from booking.models.appointment import ACTIVE_STATUSES, AppointmentStatus


class CancellationPolicy(NamedTuple):
    policy: str  # free | half | full
    refund_amount: Decimal
    refund_percentage: int
    message: str
    can_cancel: bool


class ReschedulingPolicy(NamedTuple):
    can_reschedule: bool
    policy: str  # free | fee | not_allowed
    fee: Decimal
    fee_percentage: int
    message: str
    time_remaining: str


def hours_until(appointment_at: datetime, now: datetime) -> int:
    """Whole hours until the appointment, rounded up."""
    delta = to_naive_utc(appointment_at) - to_naive_utc(now)
    return math.ceil(delta.total_seconds() / 3600)


def format_time_remaining(hours: int) -> str:
    if hours <= 0:
        return "Past due"
    if hours < 24:
        return f"{hours} hours"
    days, rest = divmod(hours, 24)
    label = f"{days} day{'s' if days != 1 else ''}"
    return label if rest == 0 else f"{label} {rest} hours"


def cancellation_policy(appointment_at: datetime, price: Decimal, now: datetime) -> CancellationPolicy:
    hours = hours_until(appointment_at, now)
    if hours <= 0:
        return CancellationPolicy(
            "full", Decimal("0"), 0, "This appointment has already passed and cannot be cancelled.", False
        )
    if hours >= 48:
        return CancellationPolicy(
            "free", price, 100, "Free cancellation available. You will receive a full refund.", True
        )
    if hours >= 24:
        return CancellationPolicy(
            "half",
            (price * Decimal("0.5")).quantize(Decimal("0.01")),
            50,
            "Cancellation within 48 hours. You will receive a 50% refund due to our cancellation policy.",
            True,
        )
    # still allowed so the cancellation is tracked
    return CancellationPolicy(
        "full",
        Decimal("0"),
        0,
        "Cancellation within 24 hours. No refund available due to our cancellation policy.",
        True,
    )


def rescheduling_policy(appointment_at: datetime, price: Decimal, now: datetime) -> ReschedulingPolicy:
    hours = hours_until(appointment_at, now)
    remaining = format_time_remaining(hours)
    if hours <= 0:
        return ReschedulingPolicy(
            False,
            "not_allowed",
            Decimal("0"),
            0,
            "Past appointments cannot be rescheduled. Please contact our office if you need assistance.",
            "Past due",
        )
    if hours >= 48:
        return ReschedulingPolicy(
            True,
            "free",
            Decimal("0"),
            0,
            "Free rescheduling available. You can reschedule without any fees.",
            remaining,
        )
    if hours > 24:
        fee = (price * Decimal("0.5")).quantize(Decimal("0.01"))
        return ReschedulingPolicy(
            True,
            "fee",
            fee,
            50,
            f"Rescheduling fee applies. You will be charged 50% of the session fee (${fee}) to reschedule.",
            remaining,
        )
    return ReschedulingPolicy(
        False,
        "not_allowed",
        Decimal("0"),
        0,
        "Appointments cannot be rescheduled within 24 hours of the scheduled time.",
        remaining,
    )


def can_reschedule(status: AppointmentStatus, appointment_at: datetime, now: datetime) -> bool:
    """Only active appointments more than 24 hours out may be moved by the client."""
    if status not in ACTIVE_STATUSES:
        return False
    return hours_until(appointment_at, now) > 24
