"""
Domain errors raised by the cauth stores.

Every expected failure (missing row, constraint violation, wrong secret) is
reported as one of these. Anything else that escapes a store is an
infrastructure failure.
"""


class CauthError(Exception):
    """Base exception for all domain errors."""

    default_message = "Operation failed"

    # Set on errors whose partial writes must still be committed
    terminal = False

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(CauthError):
    """The addressed entity does not exist."""
    default_message = "Entity not found"


class NameConflict(CauthError):
    """An entity with the same unique key already exists."""
    default_message = "An entity with this name already exists"


class DependencyNotFound(CauthError):
    """An entity referenced by the operation does not exist."""
    default_message = "A referenced entity does not exist"


class PermissionNotFound(DependencyNotFound):
    default_message = "Permission with this name cannot be found"


class GroupNotFound(DependencyNotFound):
    default_message = "Group with this name cannot be found"


class UserNotFound(DependencyNotFound):
    default_message = "User with this login cannot be found"


class NotGranted(CauthError):
    """Revoke of an edge that was never granted."""
    default_message = "This grant does not exist"


class PermissionNotGranted(NotGranted):
    default_message = "The group never had this permission"


class Unauthorized(CauthError):
    """Wrong password, wrong capability key or missing permission."""
    default_message = "Unauthorized"


class HashingFailure(CauthError):
    """Password hashing or secret derivation failed (server fault)."""
    default_message = "Password hashing error"


CannotHash = HashingFailure


class InvalidInput(CauthError):
    """A value violates a declared bound."""
    default_message = "Invalid input"
