"""
Per-plugin API for the Ramadan calendar. Mounted at /api/components/ramadan/.
"""
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict

from .pipeline import RamadanCalendar


class CalendarDayResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    gregorian_date: date
    hijri_date: str
    hijri_weekday: Optional[str] = None
    readable: Optional[str] = None
    timings: Dict[str, str]
    sehri: Optional[str] = None
    iftar: Optional[str] = None


class CalendarResponse(BaseModel):
    status: str
    location: Optional[str] = None
    hijri_year: Optional[int] = None
    start: Optional[datetime] = None
    phase: Optional[str] = None
    countdown_to_start: Optional[str] = None
    selected_date: Optional[date] = None
    days: List[CalendarDayResponse] = []
    error: Optional[str] = None


def _day_response(day) -> CalendarDayResponse:
    response = CalendarDayResponse.model_validate(day)
    response.sehri = RamadanCalendar.sehri(day)
    response.iftar = RamadanCalendar.iftar(day)
    return response


def get_router(board_app) -> Optional[APIRouter]:
    """Return router for this plugin; mounted with prefix /api/components/ramadan."""
    router = APIRouter(tags=["Ramadan Calendar"])
    session = board_app.ramadan_session

    @router.get("/calendar", response_model=CalendarResponse)
    def get_calendar() -> CalendarResponse:
        snapshot = session.snapshot
        calendar = snapshot.calendar
        now = board_app.clock()
        if calendar is None:
            return CalendarResponse(status=snapshot.status, location=snapshot.location, error=snapshot.error)
        return CalendarResponse(
            status=snapshot.status,
            location=snapshot.location,
            hijri_year=calendar.hijri_year,
            start=calendar.start,
            phase=calendar.phase(now),
            countdown_to_start=calendar.countdown_to_start(now),
            selected_date=session.selected_date,
            days=[_day_response(day) for day in calendar],
            error=snapshot.error,
        )

    @router.get("/day/{day}", response_model=CalendarDayResponse)
    def get_day(day: date) -> CalendarDayResponse:
        calendar = session.snapshot.calendar
        found = calendar.day_for(day) if calendar else None
        if found is None:
            raise HTTPException(status_code=404, detail=f"{day.isoformat()} is not a Ramadan day in the loaded calendar")
        return _day_response(found)

    return router
