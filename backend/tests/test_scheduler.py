"""Job scheduler tests: arming, partial scheduling, supersession, firing and stop"""
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from shomer.schemas.visibility import PassResult
from shomer.services.visibility_executor import VisibilityExecutor
from shomer.tasks.scheduler import VisibilityScheduler, next_sweep_after
from conftest import TestSessionLocal, add_subscription, set_admin_period, set_schedule

UTC = timezone.utc
ENTRY = datetime(2025, 7, 4, 19, 0, tzinfo=UTC)
EXIT = datetime(2025, 7, 5, 20, 0, tzinfo=UTC)


def _mock_executor():
    executor = Mock(spec=VisibilityExecutor)
    executor.run_pass = AsyncMock(side_effect=lambda user_id, action, trigger="scheduled": PassResult(
        user_id=user_id, action=action, trigger=trigger, started_at=datetime.now(UTC)
    ))
    return executor


def _scheduler(now: datetime = None, executor=None) -> VisibilityScheduler:
    clock = (lambda: now) if now is not None else None
    return VisibilityScheduler(
        executor=executor or _mock_executor(),
        session_factory=TestSessionLocal,
        clock=clock,
        max_concurrent_passes=2,
    )


@pytest.fixture
def premium_user(db_session, test_user):
    add_subscription(db_session, test_user.id)
    return test_user


@pytest.mark.critical
class TestScheduleUser:
    """Test per-user timer computation"""

    @pytest.mark.asyncio
    async def test_arms_hide_exactly_at_offset(self, db_session, premium_user):
        """Entry 19:00Z, 1hour offset, run at 17:00Z: hide armed for 18:00Z and nothing fires yet"""
        set_admin_period(db_session, ENTRY, EXIT)
        set_schedule(db_session, premium_user.id, "admin", hide_offset="1hour")
        scheduler = _scheduler(now=datetime(2025, 7, 4, 17, 0, tzinfo=UTC))

        try:
            armed = await scheduler.schedule_user(premium_user.id)
            await asyncio.sleep(0)

            assert armed["hide"] == datetime(2025, 7, 4, 18, 0, tzinfo=UTC)
            assert scheduler.get_user_jobs(premium_user.id)["hide"] == datetime(2025, 7, 4, 18, 0, tzinfo=UTC)
            assert scheduler.get_user_jobs(premium_user.id)["restore"] == EXIT
            scheduler.executor.run_pass.assert_not_awaited()
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_partial_scheduling_arms_restore_only(self, db_session, premium_user):
        set_admin_period(db_session, ENTRY, EXIT)
        set_schedule(db_session, premium_user.id, "admin", hide_offset="1hour", restore_offset="30min")
        scheduler = _scheduler(now=datetime(2025, 7, 4, 18, 30, tzinfo=UTC))

        try:
            armed = await scheduler.schedule_user(premium_user.id)

            assert "hide" not in armed
            assert armed["restore"] == EXIT + timedelta(minutes=30)
            assert set(scheduler.get_user_jobs(premium_user.id)) == {"restore"}
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_both_passed_arms_nothing(self, db_session, premium_user):
        set_admin_period(db_session, ENTRY, EXIT)
        set_schedule(db_session, premium_user.id, "admin")
        scheduler = _scheduler(now=EXIT + timedelta(hours=1))

        armed = await scheduler.schedule_user(premium_user.id)

        assert armed == {}
        assert scheduler.get_status()["total_jobs"] == 0

    @pytest.mark.asyncio
    async def test_unresolvable_period_leaves_user_unscheduled(self, db_session, premium_user):
        set_schedule(db_session, premium_user.id, "admin")  # no admin override stored
        scheduler = _scheduler(now=datetime(2025, 7, 4, 17, 0, tzinfo=UTC))

        assert await scheduler.schedule_user(premium_user.id) == {}
        assert scheduler.get_user_jobs(premium_user.id) == {}

    @pytest.mark.asyncio
    async def test_location_mode(self, db_session, premium_user):
        """Jerusalem entry 16:15Z on 2025-07-04, default 1hour offset"""
        set_schedule(db_session, premium_user.id, "281")
        scheduler = _scheduler(now=datetime(2025, 7, 2, 10, 0, tzinfo=UTC))

        try:
            armed = await scheduler.schedule_user(premium_user.id)
            assert armed["hide"] == datetime(2025, 7, 4, 15, 15, tzinfo=UTC)
            assert armed["restore"] == datetime(2025, 7, 5, 17, 25, tzinfo=UTC)
        finally:
            await scheduler.stop()


@pytest.mark.critical
class TestSweepAndRefresh:
    """Test sweeps, eligibility gating and supersession"""

    @pytest.mark.asyncio
    async def test_sweep_skips_ineligible_and_survives_bad_users(self, db_session, test_user, admin_user):
        from shomer.models.user import User
        free_user = User(email="free@example.com")
        db_session.add(free_user)
        db_session.commit()

        add_subscription(db_session, test_user.id)
        add_subscription(db_session, admin_user.id)
        add_subscription(db_session, free_user.id, plan_type="free")
        set_admin_period(db_session, ENTRY, EXIT)
        set_schedule(db_session, test_user.id, "admin")
        set_schedule(db_session, admin_user.id, "nowhere")
        set_schedule(db_session, free_user.id, "admin")

        scheduler = _scheduler(now=datetime(2025, 7, 4, 12, 0, tzinfo=UTC))
        try:
            await scheduler.start()
            status = scheduler.get_status()

            assert status["is_running"] is True
            assert set(status["user_jobs"]) == {test_user.id}
            assert status["total_jobs"] == 2
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_refresh_user_supersedes_jobs(self, db_session, premium_user):
        set_admin_period(db_session, ENTRY, EXIT)
        set_schedule(db_session, premium_user.id, "admin", hide_offset="1hour")
        scheduler = _scheduler(now=datetime(2025, 7, 4, 12, 0, tzinfo=UTC))

        try:
            await scheduler.start()
            old_task = scheduler._jobs[premium_user.id]["hide"].task

            set_schedule(db_session, premium_user.id, "admin", hide_offset="15min")
            armed = await scheduler.refresh_user(premium_user.id)
            await asyncio.sleep(0)

            assert armed["hide"] == ENTRY - timedelta(minutes=15)
            assert scheduler.get_status()["total_jobs"] == 2
            assert old_task.cancelled()
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_refresh_downgraded_user_clears_jobs(self, db_session, premium_user):
        set_admin_period(db_session, ENTRY, EXIT)
        set_schedule(db_session, premium_user.id, "admin")
        scheduler = _scheduler(now=datetime(2025, 7, 4, 12, 0, tzinfo=UTC))

        try:
            await scheduler.start()
            assert scheduler.get_user_jobs(premium_user.id)

            premium_user.subscription.status = "canceled"
            db_session.commit()
            assert await scheduler.refresh_user(premium_user.id) == {}
            assert scheduler.get_user_jobs(premium_user.id) == {}
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_refresh_users_with_location(self, db_session, premium_user):
        set_admin_period(db_session, ENTRY, EXIT)
        set_schedule(db_session, premium_user.id, "admin")
        scheduler = _scheduler(now=datetime(2025, 7, 4, 12, 0, tzinfo=UTC))

        try:
            await scheduler.start()
            set_admin_period(db_session, ENTRY + timedelta(hours=1), EXIT + timedelta(hours=1))
            assert await scheduler.refresh_users_with_location("admin") == 1
            assert scheduler.get_user_jobs(premium_user.id)["restore"] == EXIT + timedelta(hours=1)
        finally:
            await scheduler.stop()


@pytest.mark.critical
class TestFiring:
    """Test timers firing against the real clock"""

    @pytest.mark.asyncio
    async def test_timers_fire_once_and_retire(self, db_session, premium_user):
        now = datetime.now(UTC)
        set_admin_period(db_session, now + timedelta(seconds=0.2), now + timedelta(seconds=0.4))
        set_schedule(db_session, premium_user.id, "admin", hide_offset="immediate", restore_offset="immediate")
        scheduler = _scheduler()

        try:
            await scheduler.schedule_user(premium_user.id)
            await asyncio.sleep(0.7)
            await scheduler.wait_for_passes()

            calls = [call.args for call in scheduler.executor.run_pass.await_args_list]
            assert calls == [(premium_user.id, "hide", "scheduled"), (premium_user.id, "restore", "scheduled")]
            assert scheduler.get_user_jobs(premium_user.id) == {}
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_destroys_timers_but_not_running_passes(self, db_session, premium_user):
        release = asyncio.Event()
        finished = []

        async def slow_pass(user_id, action, trigger="scheduled"):
            await release.wait()
            finished.append(action)

        executor = Mock(spec=VisibilityExecutor)
        executor.run_pass = AsyncMock(side_effect=slow_pass)

        now = datetime.now(UTC)
        set_admin_period(db_session, now + timedelta(seconds=0.1), now + timedelta(hours=2))
        set_schedule(db_session, premium_user.id, "admin", hide_offset="immediate")
        scheduler = _scheduler(executor=executor)

        await scheduler.start()
        await asyncio.sleep(0.3)
        assert executor.run_pass.await_count == 1

        await scheduler.stop()
        assert scheduler.get_status()["total_jobs"] == 0
        assert scheduler.get_status()["in_flight_passes"] == 1

        release.set()
        await scheduler.wait_for_passes()
        assert finished == ["hide"]
        # The restore timer was destroyed without running
        assert executor.run_pass.await_count == 1

    @pytest.mark.asyncio
    async def test_run_pass_now_uses_manual_trigger(self, db_session, premium_user):
        scheduler = _scheduler()
        result = await scheduler.run_pass_now(premium_user.id, "restore")
        scheduler.executor.run_pass.assert_awaited_once_with(premium_user.id, "restore", "manual")
        assert result.trigger == "manual"

    @pytest.mark.asyncio
    async def test_crashing_executor_does_not_propagate(self, db_session, premium_user):
        executor = Mock(spec=VisibilityExecutor)
        executor.run_pass = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler = _scheduler(executor=executor)

        assert await scheduler.run_pass_now(premium_user.id, "hide") is None


@pytest.mark.medium
class TestWeeklySweep:
    """Test the weekly sweep instant"""

    def test_next_sweep_is_sunday_midnight_reference_time(self):
        # Saturday afternoon UTC -> Sunday 00:00 Asia/Jerusalem (UTC+3 in July)
        assert next_sweep_after(datetime(2025, 7, 5, 12, 0, tzinfo=UTC)) == datetime(2025, 7, 5, 21, 0, tzinfo=UTC)

    def test_next_sweep_strictly_after_now(self):
        sweep = datetime(2025, 7, 5, 21, 0, tzinfo=UTC)
        assert next_sweep_after(sweep) == sweep + timedelta(days=7)
