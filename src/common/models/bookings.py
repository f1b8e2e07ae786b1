from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4


class BookingStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Booking:
    resource_id: str
    requester_id: str
    start_time: datetime
    end_time: datetime
    status: BookingStatus = BookingStatus.PENDING

    guest_count: int = 1
    is_tour: bool = False

    description: Optional[str] = None
    notes: Optional[str] = None
    proposal_file_ref: Optional[str] = None

    booking_id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)
