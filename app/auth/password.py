"""
Admin password hashing (bcrypt via passlib).
"""

import logging

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return _context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored hash. A malformed hash never matches."""
    if not password or not password_hash:
        return False
    try:
        return _context.verify(password, password_hash)
    except ValueError as e:
        logger.error(f"Admin password hash is not a valid bcrypt hash: {e}")
        return False
