from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from common.models.bookings import BookingStatus
from common.utils.constants import DEFAULT_GUEST_COUNT


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError("start_time and end_time must include timezone info")
    return value.astimezone(timezone.utc)


class BookingRequest(BaseModel):
    resource_id: Optional[str] = None
    start_time: datetime
    end_time: datetime
    is_tour: bool = False
    guest_count: int = Field(default=DEFAULT_GUEST_COUNT, ge=0)
    description: Optional[str] = None
    notes: Optional[str] = None
    proposal_file: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_timezone(cls, v: datetime):
        return _require_aware(v)

    @field_validator("guest_count", mode="before")
    @classmethod
    def default_guest_count(cls, v):
        return DEFAULT_GUEST_COUNT if v is None else v

    @model_validator(mode="after")
    def require_resource(self):
        if not self.is_tour and not self.resource_id:
            raise ValueError("resource_id is required for room bookings")
        return self


class StatusUpdateRequest(BaseModel):
    status: BookingStatus

    @field_validator("status", mode="before")
    @classmethod
    def lower_status(cls, v):
        return v.lower() if isinstance(v, str) else v


class AvailabilityQuery(BaseModel):
    resource_id: str
    start_time: datetime
    end_time: datetime
    exclude_booking_id: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_timezone(cls, v: datetime):
        return _require_aware(v)


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    booking_id: str
    resource_id: str
    requester_id: str
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    guest_count: int
    is_tour: bool
    description: Optional[str] = None
    notes: Optional[str] = None
    proposal_file_ref: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ConflictResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    booking_id: str
    status: BookingStatus
    start_time: datetime
    end_time: datetime


def serialize_booking(booking) -> dict:
    return BookingResponse.model_validate(booking).model_dump(mode="json")


def serialize_conflicts(conflicts: List) -> List[dict]:
    return [
        ConflictResponse.model_validate(c).model_dump(mode="json") for c in conflicts
    ]
