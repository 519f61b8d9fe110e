"""Domain Entities - Auth"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from typing import Optional

from domain.enums import Role


class User(BaseModel):
    """User Entity (the acting front-desk or operations staff member)"""
    user_id: UUID = Field(default_factory=uuid4)
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Role = Role.FRONT_DESK
    disabled: bool = False

    class Config:
        from_attributes = True

    @property
    def can_override_unavailable(self) -> bool:
        """Booking a room under maintenance / out of service is a manager action"""
        return self.role in (Role.ADMIN, Role.MANAGER)

class UserInDB(User):
    """User with hashed password for DB storage"""
    hashed_password: str
