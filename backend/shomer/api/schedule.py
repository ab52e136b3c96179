"""Schedule routes: location catalogue and per-user schedule preferences"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from shomer.core.security import require_auth, require_csrf
from shomer.db import helpers as db_helpers
from shomer.db.session import get_db
from shomer.schemas.schedule import LocationResponse, ScheduleSettingsUpdate
from shomer.services.shabbat_times import (
    ADMIN_LOCATION_ID, LOCATIONS, HideOffset, RestoreOffset, apply_offsets, compute_quiet_period
)
from shomer.api.scheduler import get_scheduler
from shomer.tasks.scheduler import VisibilityScheduler

router = APIRouter(prefix="/api", tags=["schedule"])
logger = logging.getLogger(__name__)


def _schedule_settings(user_id: int, db: Session) -> dict:
    prefs = db_helpers.get_user_settings(user_id, "schedule", db=db)
    return {
        "location_id": prefs.get("location_id"),
        "hide_offset": prefs.get("hide_offset") or HideOffset.HOUR_1.value,
        "restore_offset": prefs.get("restore_offset") or RestoreOffset.AT_EXIT.value,
    }


@router.get("/locations", response_model=List[LocationResponse])
def list_locations():
    """Supported locations"""
    return [
        LocationResponse(
            id=location.id,
            name=location.name,
            geonameid=location.geonameid,
            entry=location.entry.strftime("%H:%M"),
            exit=location.exit.strftime("%H:%M"),
        )
        for location in LOCATIONS.values()
    ]


@router.get("/schedule/settings")
def get_schedule_settings(user_id: int = Depends(require_auth), db: Session = Depends(get_db)):
    return _schedule_settings(user_id, db)


@router.post("/schedule/settings")
async def update_schedule_settings(
    request_data: ScheduleSettingsUpdate,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
    scheduler: VisibilityScheduler = Depends(get_scheduler)
):
    """Update location/offsets and reschedule the user's timers"""
    if request_data.location_id is not None:
        if request_data.location_id != ADMIN_LOCATION_ID and request_data.location_id not in LOCATIONS:
            raise HTTPException(400, f"Unknown location: {request_data.location_id}")
        db_helpers.set_user_setting(user_id, "schedule", "location_id", request_data.location_id, db=db)

    if request_data.hide_offset is not None:
        db_helpers.set_user_setting(user_id, "schedule", "hide_offset", request_data.hide_offset, db=db)

    if request_data.restore_offset is not None:
        db_helpers.set_user_setting(user_id, "schedule", "restore_offset", request_data.restore_offset, db=db)

    await scheduler.refresh_user(user_id)
    return _schedule_settings(user_id, db)


@router.get("/schedule/upcoming")
async def get_upcoming_schedule(
    user_id: int = Depends(require_auth),
    db: Session = Depends(get_db),
    scheduler: VisibilityScheduler = Depends(get_scheduler)
):
    """The user's next quiet period, computed action times and armed timers"""
    prefs = _schedule_settings(user_id, db)
    period = await compute_quiet_period(prefs["location_id"], db, restore_offset=prefs["restore_offset"])
    if period is None:
        return {"quiet_period": None, "hide_at": None, "restore_at": None, "armed": {}}

    hide_at, restore_at = apply_offsets(
        period, HideOffset.from_string(prefs["hide_offset"]), RestoreOffset.from_string(prefs["restore_offset"])
    )
    return {
        "quiet_period": {
            "entry": period.entry.isoformat(),
            "exit": period.exit.isoformat(),
            "location_id": period.location_id,
        },
        "hide_at": hide_at.isoformat(),
        "restore_at": restore_at.isoformat(),
        "armed": {kind: target.isoformat() for kind, target in scheduler.get_user_jobs(user_id).items()},
    }
