from pydantic import BaseModel, EmailStr
from typing import Optional
from uuid import UUID
from datetime import datetime
from app.modules.auth.models import UserRole


class AuthContext(BaseModel):
    """Authenticated caller plus the cooperative the request is scoped to."""
    user_id: UUID
    user_name: str
    user_role: str
    user_cooperative_id: Optional[UUID] = None
    cooperative_id: Optional[UUID] = None

    @property
    def is_admin_dinas(self) -> bool:
        return self.user_role == "admin_dinas"


class UserOut(BaseModel):
    id: UUID
    name: str
    email: EmailStr
    role: UserRole
    cooperative_id: Optional[UUID] = None
    is_active: bool
    last_login: Optional[datetime] = None

    class Config:
        from_attributes = True


class MeResponse(BaseModel):
    user: UserOut
    cooperative_id: Optional[UUID] = None
    cooperative_name: Optional[str] = None
