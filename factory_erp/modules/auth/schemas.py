from pydantic import BaseModel
from typing import Optional
from enum import Enum


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    FLOOR_MANAGER = "FLOOR_MANAGER"
    EMPLOYEE = "EMPLOYEE"
    ACCOUNTANT = "ACCOUNTANT"


class AuthContext(BaseModel):
    """Acting user as asserted by the identity provider's token"""
    user_id: str
    user_role: UserRole
    email: Optional[str] = None
