"""
Pydantic schemas for permissions.
"""
from pydantic import BaseModel, ConfigDict, Field

from cauth.core import config


class PermissionBase(BaseModel):
    """Base permission schema."""
    name: str = Field(..., min_length=1, max_length=config.NAME_MAX_LENGTH, description="Unique permission name")
    description: str = Field("", max_length=config.DESCRIPTION_MAX_LENGTH, description="Permission description")


class PermissionCreate(PermissionBase):
    """Schema for creating a new permission."""


class PermissionResponse(PermissionBase):
    """Schema for a stored permission."""

    model_config = ConfigDict(from_attributes=True)
