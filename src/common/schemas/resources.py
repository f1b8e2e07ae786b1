from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from common.models.resources import ResourceKind


class ResourceRequest(BaseModel):
    resource_id: Optional[str] = None
    name: str = Field(min_length=1, max_length=120)
    kind: ResourceKind = ResourceKind.ROOM
    capacity: int = Field(default=0, ge=0)
    is_active: bool = True
    description: Optional[str] = None
    facilities: List[str] = Field(default_factory=list)

    @field_validator("kind", mode="before")
    @classmethod
    def upper_kind(cls, v):
        return v.upper() if isinstance(v, str) else v


class ResourceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    resource_id: str
    name: str
    kind: ResourceKind
    capacity: int
    is_active: bool
    description: Optional[str] = None
    facilities: List[str] = Field(default_factory=list)
