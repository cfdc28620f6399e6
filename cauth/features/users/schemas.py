"""
Pydantic schemas for user-related requests and responses.
"""
from typing import Any, Dict, List
from pydantic import BaseModel, Field

from cauth.core import config


class UserBase(BaseModel):
    """Base user schema with common fields."""
    login: str = Field(..., min_length=1, max_length=config.NAME_MAX_LENGTH)
    details: Dict[str, Any] = Field(default_factory=dict, description="Free-form account data")


class UserCreate(UserBase):
    """Schema for registering a user with a clear-text password."""
    password: str = Field(..., min_length=1)


class UserCreateHashed(UserBase):
    """Schema for registering a user whose password was hashed beforehand."""
    password_hash: str = Field(..., min_length=1, max_length=255)


class UserResponse(UserBase):
    """Stored user with sorted group names. The hash is never serialized."""
    password_hash: str = Field(..., exclude=True, repr=False)
    groups: List[str] = []

