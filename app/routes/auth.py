"""
Authentication routes - login/logout.
"""

import asyncio
import time
from collections import defaultdict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import settings
from ..dependencies import get_session_manager, check_auth
from ..auth import verify_password

router = APIRouter()

# Brute force protection: failed login timestamps per client IP
failed_attempts = defaultdict(list)
LOCKOUT_THRESHOLD = 5
LOCKOUT_DURATION = 300  # seconds


class LoginRequest(BaseModel):
    password: str


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/login")
async def login(request: Request, body: LoginRequest):
    """Check the admin password and start a session."""
    session_manager = get_session_manager()
    client_ip = _client_ip(request)
    current_time = time.time()

    failed_attempts[client_ip] = [
        attempt_time for attempt_time in failed_attempts[client_ip]
        if current_time - attempt_time < LOCKOUT_DURATION
    ]

    if len(failed_attempts[client_ip]) >= LOCKOUT_THRESHOLD:
        remaining = int(LOCKOUT_DURATION - (current_time - failed_attempts[client_ip][0]))
        return JSONResponse(
            {"success": False, "error": f"Too many failed attempts. Try again in {remaining} seconds."},
            status_code=429,
        )

    if settings.admin_password_hash and verify_password(body.password, settings.admin_password_hash):
        failed_attempts.pop(client_ip, None)
        response = JSONResponse({"success": True})
        session_manager.create_session(response)
        return response

    failed_attempts[client_ip].append(current_time)

    # Slow down guessing, more with each failure
    await asyncio.sleep(min(len(failed_attempts[client_ip]) * 0.5, 3))

    return JSONResponse({"success": False, "error": "Invalid password"}, status_code=401)


@router.post("/logout")
async def logout():
    response = JSONResponse({"success": True})
    get_session_manager().clear_session(response)
    return response


@router.get("/session")
async def session_status(request: Request):
    """Whether the caller has a valid session (no auth required)."""
    return {"authenticated": check_auth(request)}
