"""Password hashing and strength rules.

bcrypt is deliberately slow, so hashing and verification run in a worker
thread to keep the event loop free for unrelated requests.

Pipeline:
- validate_password_strength: Format rules (sync, no network)
- hash_password / verify_password: bcrypt, offloaded via asyncio.to_thread
- DUMMY_HASH: Timing-safe constant for user enumeration defense
"""

import asyncio
import re

import bcrypt

from app.core.config import settings
from app.core.errors import ValidationError

# bcrypt only looks at the first 72 bytes of its input.
_BCRYPT_MAX_BYTES = 72

# Pre-computed bcrypt hash for timing-safe comparison on user-not-found.
# Security: prevents user enumeration via response time differences.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"


def validate_password_strength(password: str) -> None:
    """Validate password meets strength requirements.

    8-128 chars (at most 72 bytes once encoded), letter + number + special
    character.

    Args:
        password: Plain-text password to validate.

    Raises:
        ValidationError: If password doesn't meet requirements.
    """
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters")
    if len(password) > 128 or len(password.encode()) > _BCRYPT_MAX_BYTES:
        raise ValidationError("Password is too long")
    if not re.search(r"[a-zA-Z]", password):
        raise ValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise ValidationError("Password must contain at least one number")
    if not re.search(r"[^a-zA-Z\d]", password):
        raise ValidationError("Password must contain at least one special character")


def _hash(password: bytes, rounds: int) -> str:
    return bcrypt.hashpw(password, bcrypt.gensalt(rounds=rounds)).decode()


def _check(password: bytes, password_hash: bytes) -> bool:
    if len(password) > _BCRYPT_MAX_BYTES:
        # Still burn a comparison so long inputs are not answered faster.
        bcrypt.checkpw(b"", DUMMY_HASH)
        return False
    return bcrypt.checkpw(password, password_hash)


async def hash_password(password: str, *, rounds: int | None = None) -> str:
    """Hash a password with bcrypt.

    Args:
        password: Plain-text password (already strength-checked).
        rounds: bcrypt cost factor. Defaults to settings.bcrypt_rounds.

    Returns:
        bcrypt hash string suitable for User.password_hash.
    """
    return await asyncio.to_thread(
        _hash, password.encode(), rounds or settings.bcrypt_rounds
    )


async def verify_password(password: str, password_hash: str | None) -> bool:
    """Compare a password against a stored bcrypt hash.

    When no hash is stored (unknown user, OAuth-only account) the password is
    compared against DUMMY_HASH and the result is always False, so the call
    takes the same time either way.

    Args:
        password: Candidate plain-text password.
        password_hash: Stored bcrypt hash, or None.

    Returns:
        True only if the password matches the stored hash.
    """
    if password_hash is None:
        await asyncio.to_thread(_check, password.encode(), DUMMY_HASH)
        return False
    return await asyncio.to_thread(_check, password.encode(), password_hash.encode())
