from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from app.models.principal import Role


class RegisterRequest(BaseModel):
    """Request body for registration."""
    email: EmailStr
    password: str = Field(min_length=6)
    role: Role
    full_name: str = Field(min_length=2)


class LoginRequest(BaseModel):
    """Request body for login."""
    email: EmailStr
    password: str = Field(min_length=6)


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class UserResponse(BaseModel):
    """User profile returned to the client."""
    id: str
    email: str
    role: Role
    full_name: str = ""
