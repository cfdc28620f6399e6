"""
Pydantic schemas for login sessions.
"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class LoginSessionResponse(BaseModel):
    """Schema for a stored login session."""
    id: int
    user_login: str
    token: str = Field(..., repr=False)
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
