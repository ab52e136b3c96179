"""Admin routes for the manual (admin-mode) Shabbat times"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from shomer.core.security import require_admin, require_admin_get
from shomer.db.session import get_db
from shomer.models.user import User
from shomer.schemas.schedule import AdminShabbatTimesUpdate
from shomer.services.shabbat_times import ADMIN_LOCATION_ID, get_admin_quiet_period, set_admin_quiet_period
from shomer.api.scheduler import get_scheduler
from shomer.tasks.scheduler import VisibilityScheduler

router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = logging.getLogger(__name__)


@router.get("/shabbat-times")
def get_shabbat_times(admin_user: User = Depends(require_admin_get), db: Session = Depends(get_db)):
    """Current admin-mode quiet period, if one is set"""
    period = get_admin_quiet_period(db)
    if period is None:
        return {"entry": None, "exit": None}
    return {"entry": period.entry.isoformat(), "exit": period.exit.isoformat()}


@router.put("/shabbat-times")
async def update_shabbat_times(
    request_data: AdminShabbatTimesUpdate,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    scheduler: VisibilityScheduler = Depends(get_scheduler)
):
    """Set the admin-mode quiet period and reschedule every admin-mode user"""
    try:
        period = set_admin_quiet_period(request_data.entry, request_data.exit, db)
    except ValueError as e:
        raise HTTPException(400, str(e))

    refreshed = await scheduler.refresh_users_with_location(ADMIN_LOCATION_ID)
    logger.info(f"Admin {admin_user.id} updated Shabbat times, refreshed {refreshed} users")
    return {
        "entry": period.entry.isoformat(),
        "exit": period.exit.isoformat(),
        "refreshed_users": refreshed,
    }
