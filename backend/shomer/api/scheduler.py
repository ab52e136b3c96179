"""Scheduler administration routes: status, start/stop, refresh and manual passes"""
import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from shomer.core.security import require_admin, require_admin_get
from shomer.db.helpers import get_user
from shomer.db.session import get_db
from shomer.models.user import User
from shomer.tasks.scheduler import VisibilityScheduler

router = APIRouter(prefix="/api/scheduler", tags=["scheduler"])
logger = logging.getLogger(__name__)


def get_scheduler(request: Request) -> VisibilityScheduler:
    """Dependency: the process-wide scheduler created in the lifespan"""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(503, "Scheduler not available")
    return scheduler


@router.get("/status")
def scheduler_status(
    admin_user: User = Depends(require_admin_get),
    scheduler: VisibilityScheduler = Depends(get_scheduler)
):
    """Running state and every armed timer"""
    return scheduler.get_status()


@router.post("/start")
async def start_scheduler(
    admin_user: User = Depends(require_admin),
    scheduler: VisibilityScheduler = Depends(get_scheduler)
):
    await scheduler.start()
    logger.info(f"Scheduler started by admin {admin_user.id}")
    return scheduler.get_status()


@router.post("/stop")
async def stop_scheduler(
    admin_user: User = Depends(require_admin),
    scheduler: VisibilityScheduler = Depends(get_scheduler)
):
    await scheduler.stop()
    logger.info(f"Scheduler stopped by admin {admin_user.id}")
    return scheduler.get_status()


@router.post("/users/{user_id}/refresh")
async def refresh_user_schedule(
    user_id: int,
    admin_user: User = Depends(require_admin),
    scheduler: VisibilityScheduler = Depends(get_scheduler),
    db: Session = Depends(get_db)
):
    """Recompute one user's timers"""
    if not get_user(user_id, db):
        raise HTTPException(404, "User not found")
    armed = await scheduler.refresh_user(user_id)
    return {"user_id": user_id, "jobs": {kind: target.isoformat() for kind, target in armed.items()}}


@router.post("/users/{user_id}/{action}")
async def run_pass_now(
    user_id: int,
    action: Literal["hide", "restore"],
    admin_user: User = Depends(require_admin),
    scheduler: VisibilityScheduler = Depends(get_scheduler),
    db: Session = Depends(get_db)
):
    """Run a hide or restore pass for a user immediately"""
    if not get_user(user_id, db):
        raise HTTPException(404, "User not found")

    logger.info(f"Admin {admin_user.id} triggered manual {action} for user {user_id}")
    result = await scheduler.run_pass_now(user_id, action)
    if result is None:
        raise HTTPException(500, f"{action.capitalize()} pass failed, see server logs")

    return {
        "success": result.success,
        "affected_count": result.affected_count,
        "failed_count": result.failed_count,
        "result": result.model_dump(mode="json"),
    }
