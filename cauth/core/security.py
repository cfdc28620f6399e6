"""
Password hashing and secret generation.

Passwords are hashed with Argon2id (argon2-cffi), every call drawing a fresh
random salt. Session tokens and event capability keys come from the ``secrets``
CSPRNG and are compared in constant time.
"""
import hmac
import secrets

from argon2 import PasswordHasher
from argon2.exceptions import HashingError, InvalidHashError, VerificationError, VerifyMismatchError

from cauth.core import config
from cauth.core.errors import HashingFailure
from cauth.utils import get_logger


log = get_logger(__name__)

_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    """
    Hash a password with a new random salt.

    Raises:
        HashingFailure: if the underlying library fails
    """
    try:
        return _hasher.hash(password)
    except HashingError as e:
        log.error("Password hashing failed: %s", e)
        raise HashingFailure(f"Password hashing error: {e}") from e


def verify_password_hash(password_hash: str, password: str) -> bool:
    """Check a password against a stored hash. A malformed hash never verifies."""
    try:
        return _hasher.verify(password_hash, password)
    except VerifyMismatchError:
        return False
    except (InvalidHashError, VerificationError) as e:
        log.warning("Stored password hash could not be verified: %s", e)
        return False


def generate_secret() -> str:
    """Generate an unguessable hex secret for session tokens and event keys."""
    return secrets.token_hex(config.TOKEN_BYTES)


def secrets_match(presented: str, stored: str) -> bool:
    """Compare two secrets byte-for-byte in constant time."""
    return hmac.compare_digest(presented.encode("utf-8"), stored.encode("utf-8"))
