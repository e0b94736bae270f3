"""
Per-plugin API for today's prayer times. Mounted at /api/components/prayer/.
Serializes session snapshots with Pydantic from_attributes.
"""
from datetime import datetime
from typing import Dict, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict

from .resolver import DISPLAY_ORDER
from .service import SessionStatus
from .time_codec import to_12_hour


class NextPrayerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    time: str
    countdown_ms: int
    countdown_text: str
    at: datetime


class TodayResponse(BaseModel):
    """Latest timings plus current/next resolved at request time."""

    model_config = ConfigDict(from_attributes=True)

    status: str
    location: Optional[str] = None
    date_label: Optional[str] = None
    hijri_date: Optional[str] = None
    timings: Optional[Dict[str, str]] = None
    display: Optional[Dict[str, str]] = None
    current: Optional[str] = None
    next: Optional[NextPrayerResponse] = None
    countdown: Optional[str] = None
    error: Optional[str] = None
    fetched_at: Optional[datetime] = None


def get_router(board_app) -> Optional[APIRouter]:
    """Return router for this plugin; mounted with prefix /api/components/prayer."""
    router = APIRouter(tags=["Prayer Times"])
    session = board_app.prayer_session

    @router.get("/today", response_model=TodayResponse)
    def get_today() -> TodayResponse:
        snapshot = session.snapshot
        if snapshot.status == SessionStatus.IDLE:
            raise HTTPException(status_code=404, detail="No location configured")

        state = session.state()
        display = None
        if snapshot.timings:
            display = {
                name: to_12_hour(snapshot.timings[name])
                for name in DISPLAY_ORDER
                if name in snapshot.timings
            }
        return TodayResponse(
            status=snapshot.status,
            location=snapshot.location,
            date_label=snapshot.date_label,
            hijri_date=snapshot.hijri_date,
            timings=snapshot.timings,
            display=display,
            current=state.current,
            next=NextPrayerResponse.model_validate(state.next) if state.next else None,
            countdown=session.countdown.display or None,
            error=snapshot.error,
            fetched_at=snapshot.fetched_at,
        )

    @router.post("/refresh")
    def refresh() -> Dict[str, str]:
        """Re-request today's timings on the app's event loop."""
        loop = board_app.task_manager.loop
        if loop is None:
            raise HTTPException(status_code=503, detail="Event loop not running")
        loop.call_soon_threadsafe(session.refresh)
        return {"status": "scheduled"}

    return router
