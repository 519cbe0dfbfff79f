from enum import Enum
from typing import Optional
from pydantic import BaseModel


class Role(str, Enum):
    ADMIN = "Admin"
    USER = "User"


class Identity(BaseModel):
    """Identity handed over by the auth provider"""
    user_id: str
    email: Optional[str] = None
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
