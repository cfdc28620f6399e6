"""
Pydantic schemas for groups.
"""
from typing import List
from pydantic import BaseModel, Field

from cauth.core import config


class GroupBase(BaseModel):
    """Base group schema."""
    name: str = Field(..., min_length=1, max_length=config.NAME_MAX_LENGTH, description="Unique group name")
    description: str = Field("", max_length=config.DESCRIPTION_MAX_LENGTH, description="Group description")


class GroupCreate(GroupBase):
    """Schema for creating a group together with its initial grants."""
    permissions: List[str] = Field(default_factory=list, description="Names of permissions to grant")


class GroupResponse(GroupBase):
    """Schema for a stored group with its granted permission names (sorted)."""
    permissions: List[str] = []
