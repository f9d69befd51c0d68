from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


def _require_text(value: str, message: str) -> str:
    if not value or not value.strip():
        raise ValueError(message)
    return value.strip()


# Auth

class RegisterRequest(BaseModel):
    """Request model to register a new user"""
    name: str = Field(..., max_length=255, description="Display name")
    email: EmailStr = Field(..., description="User email, used as login key")
    password: str = Field(..., min_length=6, description="Plaintext password (min 6 chars)")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        return _require_text(v, "Name is required")

    @field_validator("email")
    @classmethod
    def email_fits_column(cls, v: str) -> str:
        if len(v) > 255:
            raise ValueError("Email must be at most 255 characters")
        return v


class LoginRequest(BaseModel):
    """Request model to log in"""
    email: EmailStr = Field(..., description="User email")
    password: str = Field(..., min_length=1, description="Plaintext password")


class UserResponse(BaseModel):
    """User response without sensitive fields"""
    id: int
    name: str
    email: str

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    """Returned by register and login"""
    user: UserResponse
    token: str = Field(..., description="JWT bearer token")


class ProfileResponse(BaseModel):
    user: UserResponse


# Tasks

class TaskWriteRequest(BaseModel):
    """
    Create/update task request.

    Updates are full replacements, so the same shape serves both. Extra keys
    sent by clients (e.g. `completed`) are ignored.
    """
    title: str = Field(..., max_length=255)
    description: Optional[str] = Field(None, description="Task description")

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        return _require_text(v, "Task title is required")


class TaskResponse(BaseModel):
    """Task response model"""
    id: int
    user_id: int = Field(..., serialization_alias="userId")
    title: str
    description: str
    created_at: datetime

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    message: str


# Errors

class FieldError(BaseModel):
    field: str
    message: str


class ErrorBody(BaseModel):
    kind: str
    message: str
    fields: Optional[List[FieldError]] = None


class ErrorResponse(BaseModel):
    """Single error envelope used by every endpoint"""
    error: ErrorBody
