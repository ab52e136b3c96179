"""Automatic visibility scheduler - arms per-user hide/restore timers around Shabbat

One VisibilityScheduler is created by the application lifespan and kept on
app.state. Each eligible user has at most one armed hide timer and one armed
restore timer, each an asyncio task sleeping until an absolute instant. A
weekly sweep (Sunday 00:00 reference time by default) recomputes everyone.
Fired timers hand the pass to a separate task so stop() never kills a pass
that is already running.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Callable, Dict, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shomer.core.config import settings
from shomer.core.metrics import scheduler_sweeps_counter, armed_jobs_gauge
from shomer.db.helpers import get_user_settings
from shomer.db.session import SessionLocal
from shomer.models.setting import Setting
from shomer.schemas.visibility import PassResult
from shomer.services.shabbat_times import (
    HideOffset, RestoreOffset, apply_offsets, compute_quiet_period, reference_timezone
)
from shomer.services.subscription_service import get_eligible_user_ids, is_eligible_for_automation
from shomer.services.visibility_executor import HIDE, RESTORE, VisibilityExecutor

scheduler_logger = logging.getLogger("scheduler")

# Long timers wake up periodically and re-read the clock
MAX_TIMER_SLEEP_SECONDS = 3600.0


@dataclass
class ScheduledJob:
    """An armed one-shot timer for one user"""
    user_id: int
    kind: str  # hide | restore
    target: datetime
    task: asyncio.Task


def next_sweep_after(now: datetime) -> datetime:
    """Next weekly sweep instant strictly after now, in UTC"""
    tz = reference_timezone()
    local_now = now.astimezone(tz)
    sweep_date = local_now.date() + timedelta(days=(settings.SCHEDULER_SWEEP_WEEKDAY - local_now.weekday()) % 7)
    sweep_time = time(hour=settings.SCHEDULER_SWEEP_HOUR)
    candidate = datetime.combine(sweep_date, sweep_time, tzinfo=tz)
    if candidate <= local_now:
        candidate = datetime.combine(sweep_date + timedelta(days=7), sweep_time, tzinfo=tz)
    return candidate.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VisibilityScheduler:
    """Owns every armed timer in the process"""

    def __init__(
        self,
        executor: Optional[VisibilityExecutor] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_concurrent_passes: Optional[int] = None,
    ):
        self.session_factory = session_factory or SessionLocal
        self.executor = executor or VisibilityExecutor(session_factory=self.session_factory)
        self._clock = clock or _utcnow
        self._jobs: Dict[int, Dict[str, ScheduledJob]] = {}
        self._in_flight: Set[asyncio.Task] = set()
        self._sweep_task: Optional[asyncio.Task] = None
        self._next_sweep_at: Optional[datetime] = None
        self._pass_slots = asyncio.Semaphore(max_concurrent_passes or settings.SCHEDULER_MAX_CONCURRENT_PASSES)
        self.is_running = False

    # ---- lifecycle ----

    async def start(self) -> None:
        """Sweep all eligible users now, then keep sweeping weekly"""
        if self.is_running:
            scheduler_logger.warning("Scheduler already running")
            return

        self.is_running = True
        scheduler_logger.info("Starting automatic visibility scheduler")
        await self.sweep()
        self._sweep_task = asyncio.create_task(self._weekly_sweep_loop(), name="visibility-weekly-sweep")

    async def stop(self) -> None:
        """Stop the weekly sweep and drop all armed timers; running passes finish on their own"""
        self.is_running = False
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        self._next_sweep_at = None

        for user_id in list(self._jobs):
            self._clear_user_jobs(user_id)
        scheduler_logger.info(f"Scheduler stopped ({len(self._in_flight)} passes still running)")

    async def wait_for_passes(self) -> None:
        """Wait until every fired pass has completed"""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    # ---- scheduling ----

    async def sweep(self) -> None:
        """Recompute timers for every eligible user"""
        db = self.session_factory()
        try:
            user_ids = get_eligible_user_ids(db)
        except SQLAlchemyError as e:
            scheduler_logger.error(f"Sweep failed to load eligible users: {e}", exc_info=True)
            scheduler_sweeps_counter.labels(status="failure").inc()
            return
        finally:
            db.close()

        # Users that lost eligibility since the last sweep
        for user_id in list(self._jobs):
            if user_id not in user_ids:
                self._clear_user_jobs(user_id)

        scheduler_logger.info(f"Sweeping {len(user_ids)} eligible users")
        for user_id in user_ids:
            try:
                await self.schedule_user(user_id)
            except Exception as e:
                scheduler_logger.error(
                    f"Failed to schedule user {user_id}: {e}",
                    extra={"user_id": user_id, "error_type": type(e).__name__},
                    exc_info=True
                )
        scheduler_sweeps_counter.labels(status="success").inc()

    async def refresh_user(self, user_id: int) -> Dict[str, datetime]:
        """Recompute one user's timers after a settings change

        Returns:
            Dict of armed kind -> target instant (empty if nothing was armed)
        """
        if not self.is_running:
            scheduler_logger.debug(f"Scheduler not running, not refreshing user {user_id}")
            return {}

        try:
            db = self.session_factory()
            try:
                eligible = is_eligible_for_automation(user_id, db)
            finally:
                db.close()

            if not eligible:
                self._clear_user_jobs(user_id)
                scheduler_logger.info(f"User {user_id} not eligible for automation, timers cleared")
                return {}

            return await self.schedule_user(user_id)
        except Exception as e:
            scheduler_logger.error(
                f"Failed to refresh schedule for user {user_id}: {e}",
                extra={"user_id": user_id, "error_type": type(e).__name__},
                exc_info=True
            )
            return {}

    async def refresh_users_with_location(self, location_id: str) -> int:
        """Refresh every user whose schedule uses a location (e.g. admin mode)"""
        db = self.session_factory()
        try:
            rows = db.query(Setting.user_id).filter(
                Setting.category == "schedule",
                Setting.key == "location_id",
                Setting.value.in_([json.dumps(location_id), location_id])
            ).all()
        finally:
            db.close()

        user_ids = [row[0] for row in rows]
        for user_id in user_ids:
            await self.refresh_user(user_id)
        return len(user_ids)

    async def schedule_user(self, user_id: int) -> Dict[str, datetime]:
        """Replace a user's timers with freshly computed ones

        Only instants still in the future are armed. A missed hide with a
        pending restore arms the restore alone.
        """
        db = self.session_factory()
        try:
            prefs = get_user_settings(user_id, "schedule", db)
            location_id = prefs.get("location_id")
            try:
                hide_offset = HideOffset.from_string(prefs.get("hide_offset"))
                restore_offset = RestoreOffset.from_string(prefs.get("restore_offset"))
            except ValueError as e:
                scheduler_logger.warning(f"Invalid offsets for user {user_id}: {e}", extra={"user_id": user_id})
                self._clear_user_jobs(user_id)
                return {}
            period = await compute_quiet_period(location_id, db, now=self._clock(), restore_offset=restore_offset)
        finally:
            db.close()

        # No awaits from here on, so clearing and re-arming cannot interleave with another refresh
        self._clear_user_jobs(user_id)

        if period is None:
            scheduler_logger.warning(
                f"No quiet period for user {user_id} (location {location_id!r}), leaving unscheduled",
                extra={"user_id": user_id}
            )
            return {}

        hide_at, restore_at = apply_offsets(period, hide_offset, restore_offset)
        now = self._clock()

        armed = {}
        if hide_at > now:
            self._arm(user_id, HIDE, hide_at)
            armed[HIDE] = hide_at
        if restore_at > now:
            self._arm(user_id, RESTORE, restore_at)
            armed[RESTORE] = restore_at

        if not armed:
            scheduler_logger.info(f"Both targets already passed for user {user_id}, waiting for next sweep")
        elif HIDE not in armed:
            scheduler_logger.info(f"Hide time passed for user {user_id}, armed restore only at {restore_at.isoformat()}")
        else:
            scheduler_logger.info(
                f"Scheduled user {user_id}: hide at {hide_at.isoformat()}"
                + (f", restore at {restore_at.isoformat()}" if RESTORE in armed else "")
            )
        return armed

    # ---- manual trigger ----

    async def run_pass_now(self, user_id: int, action: str) -> Optional[PassResult]:
        """Run a hide or restore pass immediately, outside the timers"""
        if action not in (HIDE, RESTORE):
            raise ValueError(f"Unknown pass action: {action}")
        scheduler_logger.info(f"Manual {action} requested for user {user_id}")
        return await self._execute(user_id, action, "manual")

    # ---- status ----

    def get_status(self) -> Dict:
        user_jobs = {}
        for user_id, jobs in self._jobs.items():
            user_jobs[user_id] = {
                kind: jobs[kind].target.isoformat() if kind in jobs else None
                for kind in (HIDE, RESTORE)
            }
        return {
            "is_running": self.is_running,
            "active_users": len(self._jobs),
            "total_jobs": sum(len(jobs) for jobs in self._jobs.values()),
            "in_flight_passes": len(self._in_flight),
            "next_sweep_at": self._next_sweep_at.isoformat() if self._next_sweep_at else None,
            "user_jobs": user_jobs,
        }

    def get_user_jobs(self, user_id: int) -> Dict[str, datetime]:
        return {kind: job.target for kind, job in self._jobs.get(user_id, {}).items()}

    # ---- internals ----

    def _arm(self, user_id: int, kind: str, target: datetime) -> None:
        existing = self._jobs.get(user_id, {}).pop(kind, None)
        if existing is not None:
            existing.task.cancel()

        task = asyncio.create_task(self._run_timer(user_id, kind, target), name=f"{kind}-timer-{user_id}")
        self._jobs.setdefault(user_id, {})[kind] = ScheduledJob(user_id=user_id, kind=kind, target=target, task=task)
        self._update_gauge()

    def _clear_user_jobs(self, user_id: int) -> None:
        jobs = self._jobs.pop(user_id, None)
        if not jobs:
            return
        for job in jobs.values():
            job.task.cancel()
        self._update_gauge()

    def _retire(self, user_id: int, kind: str) -> None:
        jobs = self._jobs.get(user_id)
        if not jobs:
            return
        job = jobs.get(kind)
        if job is not None and job.task is asyncio.current_task():
            del jobs[kind]
            if not jobs:
                del self._jobs[user_id]
            self._update_gauge()

    def _update_gauge(self) -> None:
        for kind in (HIDE, RESTORE):
            armed_jobs_gauge.labels(kind=kind).set(
                sum(1 for jobs in self._jobs.values() if kind in jobs)
            )

    async def _sleep_until(self, target: datetime) -> None:
        while True:
            remaining = (target - self._clock()).total_seconds()
            if remaining <= 0:
                return
            await asyncio.sleep(min(remaining, MAX_TIMER_SLEEP_SECONDS))

    async def _run_timer(self, user_id: int, kind: str, target: datetime) -> None:
        await self._sleep_until(target)

        self._retire(user_id, kind)
        scheduler_logger.info(f"{kind.capitalize()} timer fired for user {user_id} (target {target.isoformat()})")

        task = asyncio.create_task(self._execute(user_id, kind, "scheduled"), name=f"{kind}-pass-{user_id}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _execute(self, user_id: int, action: str, trigger: str) -> Optional[PassResult]:
        async with self._pass_slots:
            try:
                return await self.executor.run_pass(user_id, action, trigger)
            except Exception as e:
                scheduler_logger.error(
                    f"{action.capitalize()} pass crashed for user {user_id}: {e}",
                    extra={"user_id": user_id, "action": action, "error_type": type(e).__name__},
                    exc_info=True
                )
                return None

    async def _weekly_sweep_loop(self) -> None:
        while self.is_running:
            self._next_sweep_at = next_sweep_after(self._clock())
            scheduler_logger.info(f"Next weekly sweep at {self._next_sweep_at.isoformat()}")
            await self._sleep_until(self._next_sweep_at)
            try:
                await self.sweep()
            except Exception as e:
                scheduler_logger.error(f"Weekly sweep failed: {e}", exc_info=True)
                scheduler_sweeps_counter.labels(status="failure").inc()
