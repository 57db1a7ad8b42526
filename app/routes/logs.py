"""
Sync history routes.
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_db, require_auth
from ..processor import SyncRunLogger

router = APIRouter(prefix="/api/sync-prices/history", dependencies=[Depends(require_auth)])


@router.get("")
async def list_history(limit: int = Query(30, ge=1, le=365)):
    """Days with logged runs, newest first, plus the latest run."""
    run_logger = SyncRunLogger(get_db())
    days = await run_logger.list_days(limit=limit)
    latest = await run_logger.latest() if days else None
    return {"days": days, "latest": latest}


@router.get("/{day}")
async def get_history_day(day: str):
    try:
        parsed = date.fromisoformat(day)
    except ValueError:
        raise HTTPException(status_code=400, detail="Day must be YYYY-MM-DD")

    runs = await SyncRunLogger(get_db()).get_day(parsed)
    if runs is None:
        raise HTTPException(status_code=404, detail="No sync log for this day")

    return {"day": parsed.isoformat(), "runs": runs}
