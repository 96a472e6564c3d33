from enum import Enum

from pydantic import BaseModel, EmailStr, Field, PositiveInt


class UserRole(Enum):
    ADMIN = "admin"
    VIEWER = "viewer"
    SUPPORT = "support"


class UserQuery(BaseModel):
    role: UserRole | None = None


class UserRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    role: UserRole


class User(UserRequest):
    id: PositiveInt
