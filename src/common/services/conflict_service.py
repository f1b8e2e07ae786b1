import logging
from datetime import datetime
from typing import Iterable, List, Optional

from common.models.bookings import Booking, BookingStatus
from common.repository.booking_repo import BookingRepository
from common.services.time_range import intervals_overlap, validate_time_range

logger = logging.getLogger(__name__)


def find_overlapping(
    bookings: Iterable[Booking],
    start: datetime,
    end: datetime,
    exclude_booking_id: Optional[str] = None,
) -> List[Booking]:
    conflicts = []
    for booking in bookings:
        if booking.status != BookingStatus.APPROVED:
            continue
        if exclude_booking_id and booking.booking_id == exclude_booking_id:
            continue
        if intervals_overlap(start, end, booking.start_time, booking.end_time):
            conflicts.append(booking)
    return conflicts


class ConflictDetector:
    def __init__(self, booking_repo: BookingRepository):
        self.booking_repo = booking_repo

    def find_conflicts(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        validate_time_range(start, end)
        candidates = self.booking_repo.get_approved_bookings(resource_id, start, end)
        conflicts = find_overlapping(candidates, start, end, exclude_booking_id)
        if conflicts:
            logger.info(
                f"{len(conflicts)} approved booking(s) overlap "
                f"{start.isoformat()} - {end.isoformat()} on resource {resource_id}"
            )
        return conflicts
