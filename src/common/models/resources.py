from enum import Enum
from typing import List, Optional
from dataclasses import dataclass, field


class ResourceKind(str, Enum):
    ROOM = "ROOM"
    TOUR = "TOUR"


@dataclass
class Resource:
    resource_id: str
    name: str
    kind: ResourceKind = ResourceKind.ROOM
    capacity: int = 0
    is_active: bool = True
    description: Optional[str] = None
    facilities: List[str] = field(default_factory=list)
