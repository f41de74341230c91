"""
Acting identity passed to every state transition.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr

from src.core.enums import UserRole


class Actor(BaseModel):
    """Authenticated user performing an action."""

    model_config = ConfigDict(frozen=True)

    user_id: UUID
    name: str
    role: UserRole
    facility_id: Optional[UUID] = None
    tpa_id: Optional[UUID] = None
    email: Optional[EmailStr] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_tpa(self) -> bool:
        return self.role == UserRole.TPA

    @property
    def is_facility(self) -> bool:
        return self.role == UserRole.FACILITY
