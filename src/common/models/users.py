from enum import Enum
from dataclasses import dataclass
from typing import Optional


class UserRole(Enum):
    ADMIN = "ADMIN"
    USER = "USER"


@dataclass
class User:
    user_id: str
    email: str
    role: UserRole = UserRole.USER
    full_name: Optional[str] = None
    institution: Optional[str] = None
