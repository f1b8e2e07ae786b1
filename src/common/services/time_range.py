from datetime import datetime
from common.utils.custom_exceptions import InvalidRange


def validate_time_range(start: datetime, end: datetime) -> None:
    if start >= end:
        raise InvalidRange("end_time must be after start_time")


def intervals_overlap(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Half-open [start, end) overlap; back-to-back intervals do not overlap."""
    return start_a < end_b and end_a > start_b
