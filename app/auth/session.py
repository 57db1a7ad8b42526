"""
Signed-cookie sessions for the admin API.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import Request, Response
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired


SESSION_MAX_AGE = 24 * 60 * 60  # seconds
SESSION_COOKIE_NAME = "cj_sync_session"


class SessionManager:
    """Issues and verifies the admin session cookie."""

    def __init__(self, secret_key: str, max_age: int = SESSION_MAX_AGE, secure: bool = False):
        """
        Initialize session manager.

        Args:
            secret_key: Secret used to sign cookies
            max_age: Session lifetime in seconds
            secure: Only send the cookie over HTTPS
        """
        self._serializer = URLSafeTimedSerializer(secret_key, salt="cj-sync-session")
        self.max_age = max_age
        self.secure = secure

    def create_session(self, response: Response, user_id: str = "admin") -> None:
        token = self._serializer.dumps({
            "user_id": user_id,
            "created_at": datetime.now(timezone.utc).isoformat(),
        })

        response.set_cookie(
            key=SESSION_COOKIE_NAME,
            value=token,
            max_age=self.max_age,
            httponly=True,
            samesite="lax",
            secure=self.secure,
        )

    def get_session(self, request: Request) -> Optional[dict]:
        """Session data of the request, or None if missing, tampered or expired."""
        token = request.cookies.get(SESSION_COOKIE_NAME)
        if not token:
            return None

        try:
            return self._serializer.loads(token, max_age=self.max_age)
        except (BadSignature, SignatureExpired):
            return None

    def clear_session(self, response: Response) -> None:
        response.delete_cookie(
            key=SESSION_COOKIE_NAME,
            httponly=True,
            samesite="lax",
        )

    def is_authenticated(self, request: Request) -> bool:
        return self.get_session(request) is not None
