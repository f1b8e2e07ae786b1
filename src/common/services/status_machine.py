"""Booking lifecycle rules.

pending is the only initial state; rejected, cancelled and completed are
terminal. Approved bookings may still be overridden by an admin to rejected
or cancelled, and move to completed once their end time has passed.
"""
from datetime import datetime
from typing import Optional

from common.models.bookings import Booking, BookingStatus
from common.utils.custom_exceptions import IllegalTransition
from common.utils.datetime_normaliser import utc_now

TERMINAL_STATUSES = frozenset(
    {BookingStatus.REJECTED, BookingStatus.CANCELLED, BookingStatus.COMPLETED}
)

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.APPROVED, BookingStatus.REJECTED, BookingStatus.CANCELLED}
    ),
    BookingStatus.APPROVED: frozenset(
        {BookingStatus.COMPLETED, BookingStatus.REJECTED, BookingStatus.CANCELLED}
    ),
}


def is_terminal(status: BookingStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(
    booking: Booking, target: BookingStatus, now: Optional[datetime] = None
) -> None:
    if not can_transition(booking.status, target):
        raise IllegalTransition(booking.status, target)
    if target == BookingStatus.COMPLETED:
        now = now or utc_now()
        if now < booking.end_time:
            raise IllegalTransition(booking.status, target)


def apply_transition(
    booking: Booking, target: BookingStatus, now: Optional[datetime] = None
) -> BookingStatus:
    """Move booking to target in place and return the status it came from."""
    now = now or utc_now()
    ensure_transition(booking, target, now)
    previous = booking.status
    booking.status = target
    booking.updated_at = now
    return previous
