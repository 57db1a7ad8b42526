"""
Single-operator login: a bcrypt password hash from settings and a signed
session cookie.
"""

from app.auth.password import hash_password, verify_password
from app.auth.session import SESSION_COOKIE_NAME, SESSION_MAX_AGE, SessionManager

__all__ = [
    "SESSION_COOKIE_NAME",
    "SESSION_MAX_AGE",
    "SessionManager",
    "hash_password",
    "verify_password",
]
