"""
Process-wide state handed to the routes.

One database, one session manager, and the sync state every run shares:
the CJ price cache/cool-down and the registry of in-flight runs.
"""

import logging
from typing import Optional

from fastapi import HTTPException, Request

from .auth import SessionManager
from .config import settings
from .db import SQLiteDatabase
from .processor import RunRegistry, SupplierRateState, create_rate_state

logger = logging.getLogger(__name__)

_db: Optional[SQLiteDatabase] = None
_session_manager: Optional[SessionManager] = None
_rate_state: Optional[SupplierRateState] = None
_run_registry: Optional[RunRegistry] = None


async def init_dependencies():
    """Open the database and create the shared sync state. Called from the lifespan hook."""
    global _db, _session_manager, _rate_state, _run_registry

    _db = SQLiteDatabase(settings.database_path)
    await _db.initialize()

    _session_manager = SessionManager(
        settings.session_secret, secure=settings.session_cookie_secure
    )
    _rate_state = create_rate_state()
    _run_registry = RunRegistry()


async def close_dependencies():
    """Signal running syncs to stop, then close the database."""
    global _db
    if _run_registry is not None:
        cancelled = _run_registry.cancel_all()
        if cancelled:
            logger.info(f"Signalled {cancelled} running sync(s) to stop")
    if _db is not None:
        await _db.close()
        _db = None


def _require(value, name: str):
    if value is None:
        raise RuntimeError(f"{name} not initialized")
    return value


def get_db() -> SQLiteDatabase:
    return _require(_db, "Database")


def get_session_manager() -> SessionManager:
    return _require(_session_manager, "Session manager")


def get_rate_state() -> SupplierRateState:
    """CJ price cache and cool-down shared by every run of this process."""
    return _require(_rate_state, "Rate state")


def get_run_registry() -> RunRegistry:
    return _require(_run_registry, "Run registry")


async def require_auth(request: Request):
    """Router dependency: 401 unless the request carries a valid session."""
    if not check_auth(request):
        raise HTTPException(status_code=401, detail="Not authenticated")


def check_auth(request: Request) -> bool:
    return get_session_manager().is_authenticated(request)
