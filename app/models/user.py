from pydantic import BaseModel, ConfigDict, EmailStr
from typing import Optional
from datetime import datetime

from app.core.rbac import UserRole

class User(BaseModel):
    """A portal account, stored at users/{id}."""
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    id: str                           # Same as the Firebase Auth uid
    email: EmailStr
    password: Optional[str] = None    # Temporary password, cleared on first change
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    phoneNumber: Optional[str] = None
    role: UserRole
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @property
    def has_temporary_password(self) -> bool:
        return bool(self.password)

    @property
    def full_name(self) -> str:
        return f"{self.firstName or ''} {self.lastName or ''}".strip()

class CreateUserRequest(BaseModel):
    """Payload of the admin-only create-user procedure."""
    email: EmailStr
    password: str
    firstName: str
    lastName: str
    phoneNumber: str
    role: UserRole

class CachedRoleEntry(BaseModel):
    uid: str
    role: str
    timestamp: float    # epoch milliseconds
