"""
Pydantic schemas for staged events.

Payloads form a closed union discriminated by ``kind``; each variant carries
exactly the data its commit needs.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Union
from pydantic import BaseModel, Field

from cauth.core import config


class EventKind(str, Enum):
    REGISTER = "register"
    LOGIN = "login"
    DELETE = "delete"


class RegisterUserPayload(BaseModel):
    """Create a user from a hash computed when the event was staged."""
    kind: Literal["register"] = "register"
    login: str = Field(..., min_length=1, max_length=config.NAME_MAX_LENGTH)
    password_hash: str = Field(..., exclude=True, repr=False)
    details: Dict[str, Any] = Field(default_factory=dict)


class LoginUserPayload(BaseModel):
    """Issue a login session for an already verified user."""
    kind: Literal["login"] = "login"
    user_login: str


class DeleteUserPayload(BaseModel):
    """Delete a user and everything it owns."""
    kind: Literal["delete"] = "delete"
    user_login: str


StagedEventPayload = Annotated[
    Union[RegisterUserPayload, LoginUserPayload, DeleteUserPayload],
    Field(discriminator="kind"),
]


class EventCredentials(BaseModel):
    """Returned once, at staging time, to the creator only."""
    id: int
    key: str = Field(..., repr=False)


class StagedEventResponse(BaseModel):
    """A pending event as seen by operators. The key is never included."""
    id: int
    created_at: datetime
    payload: StagedEventPayload
