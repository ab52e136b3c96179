"""Visibility executor - one hide or restore pass for one user across all connected platforms

Platforms run concurrently, each with its own database session and a bounded
run time. Items within a platform are processed one at a time with a fixed
delay between platform calls. Every failure is contained at its own scope
(item, platform, pass) and ends up in the PassResult and the history log.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shomer.core.config import settings
from shomer.core.metrics import (
    visibility_passes_counter, items_changed_counter,
    item_failures_counter, platform_failures_counter
)
from shomer.db.helpers import get_connected_platforms, get_user
from shomer.db.session import SessionLocal
from shomer.models.original_status import OriginalStatus
from shomer.schemas.visibility import ItemError, PassResult, PlatformResult
from shomer.services.content_state_service import (
    is_content_locked, save_original_status, get_original_statuses, clear_original_status
)
from shomer.services.credential_service import AuthenticationError, get_valid_credentials
from shomer.services.history_service import record_pass
from shomer.services.platforms.base import BasePlatformAdapter, PlatformAPIError, PlatformCredentials
from shomer.services.platforms.registry import PLATFORM_ADAPTERS

visibility_logger = logging.getLogger("visibility")

HIDE = "hide"
RESTORE = "restore"


class VisibilityExecutor:
    """Runs hide/restore passes against the platform adapters"""

    def __init__(
        self,
        adapters: Optional[Dict[str, BasePlatformAdapter]] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        item_delay: Optional[float] = None,
        platform_timeout: Optional[float] = None,
    ):
        self.adapters = adapters if adapters is not None else PLATFORM_ADAPTERS
        self.session_factory = session_factory or SessionLocal
        self.item_delay = settings.PLATFORM_ITEM_DELAY_SECONDS if item_delay is None else item_delay
        self.platform_timeout = settings.PLATFORM_PASS_TIMEOUT_SECONDS if platform_timeout is None else platform_timeout

    async def run_hide_pass(self, user_id: int, trigger: str = "scheduled") -> PassResult:
        return await self.run_pass(user_id, HIDE, trigger)

    async def run_restore_pass(self, user_id: int, trigger: str = "scheduled") -> PassResult:
        return await self.run_pass(user_id, RESTORE, trigger)

    async def run_pass(self, user_id: int, action: str, trigger: str = "scheduled") -> PassResult:
        """Run one pass and record its outcome before returning it"""
        if action not in (HIDE, RESTORE):
            raise ValueError(f"Unknown pass action: {action}")

        result = PassResult(
            user_id=user_id,
            action=action,
            trigger=trigger,
            started_at=datetime.now(timezone.utc),
        )
        visibility_logger.info(f"Starting {action} pass for user {user_id} ({trigger})")

        db = self.session_factory()
        try:
            if get_user(user_id, db) is None:
                visibility_logger.error(f"User {user_id} not found, skipping {action} pass")
                result.error = "User not found"
                result.finished_at = datetime.now(timezone.utc)
                return result

            platforms = self._platforms_for_pass(user_id, action, db)
            if not platforms:
                result.error = "No connected platforms"
            else:
                platform_results = await asyncio.gather(*(
                    self._run_platform(user_id, self.adapters[platform], action)
                    for platform in platforms
                ))
                result.platforms = list(platform_results)

            result.finished_at = datetime.now(timezone.utc)
            try:
                record_pass(result, db)
            except SQLAlchemyError as e:
                db.rollback()
                visibility_logger.error(
                    f"Failed to record {action} history for user {user_id}: {e}",
                    extra={"user_id": user_id, "action": action},
                    exc_info=True
                )
        finally:
            db.close()

        status = "success" if result.success else "failure"
        visibility_passes_counter.labels(action=action, trigger=trigger, status=status).inc()
        visibility_logger.info(
            f"{action.capitalize()} pass complete for user {user_id}: "
            f"{result.affected_count} changed, {result.failed_count} failed"
            + (f", error: {result.error}" if result.error else "")
        )
        return result

    def _platforms_for_pass(self, user_id: int, action: str, db: Session) -> List[str]:
        """Connected platforms; restore also includes platforms with items still awaiting restore"""
        platforms = set(get_connected_platforms(user_id, db))
        if action == RESTORE:
            pending = db.query(OriginalStatus.platform).filter(
                OriginalStatus.user_id == user_id
            ).distinct().all()
            platforms.update(row[0] for row in pending)
        return sorted(p for p in platforms if p in self.adapters)

    async def _run_platform(self, user_id: int, adapter: BasePlatformAdapter, action: str) -> PlatformResult:
        """Run the pass on one platform; never raises"""
        platform = adapter.platform
        result = PlatformResult(platform=platform)
        db = self.session_factory()
        try:
            body = self._hide_platform if action == HIDE else self._restore_platform
            await asyncio.wait_for(body(user_id, adapter, result, db), timeout=self.platform_timeout)
        except asyncio.TimeoutError:
            result.error = f"Timed out after {self.platform_timeout:.0f}s"
            visibility_logger.error(f"{platform} {action} pass timed out for user {user_id}")
        except AuthenticationError as e:
            result.error = f"Authentication failed: {e}"
            visibility_logger.warning(f"{platform} {action} skipped for user {user_id}: {e}")
        except PlatformAPIError as e:
            result.error = str(e)
            visibility_logger.error(
                f"{platform} {action} pass failed for user {user_id}: {e}",
                extra={"user_id": user_id, "platform": platform, "error_type": type(e).__name__}
            )
        except Exception as e:
            result.error = f"{type(e).__name__}: {e}"
            visibility_logger.error(
                f"Unexpected error in {platform} {action} pass for user {user_id}: {e}",
                extra={"user_id": user_id, "platform": platform, "error_type": type(e).__name__},
                exc_info=True
            )
        finally:
            db.close()

        if result.error:
            platform_failures_counter.labels(platform=platform, action=action).inc()
        return result

    async def _hide_platform(self, user_id: int, adapter: BasePlatformAdapter,
                             result: PlatformResult, db: Session) -> None:
        platform = adapter.platform
        credentials = await get_valid_credentials(user_id, adapter, db)
        items = await adapter.list_content(credentials)
        result.total = len(items)

        first_call = True
        for item in items:
            if is_content_locked(user_id, platform, item.id, db):
                result.skipped_locked += 1
                visibility_logger.debug(f"Skipping locked {platform} item {item.id} (user {user_id})")
                continue

            if adapter.is_hidden(item.visibility):
                result.skipped_already += 1
                continue

            if not first_call:
                await asyncio.sleep(self.item_delay)
            first_call = False

            # Recorded before the platform call and kept even if the call fails
            save_original_status(user_id, platform, item.id, item.visibility, db)
            await self._change_item(user_id, adapter, credentials, item.id, adapter.hidden_visibility, HIDE, result)

    async def _restore_platform(self, user_id: int, adapter: BasePlatformAdapter,
                                result: PlatformResult, db: Session) -> None:
        platform = adapter.platform
        originals = get_original_statuses(user_id, platform, db)
        result.total = len(originals)
        if not originals:
            return

        credentials = await get_valid_credentials(user_id, adapter, db)

        first_call = True
        for content_id, original_visibility in originals.items():
            if is_content_locked(user_id, platform, content_id, db):
                # Stays hidden; the record waits for a restore pass after unlock
                result.skipped_locked += 1
                visibility_logger.debug(f"Skipping locked {platform} item {content_id} (user {user_id})")
                continue

            if not first_call:
                await asyncio.sleep(self.item_delay)
            first_call = False

            if await self._change_item(user_id, adapter, credentials, content_id, original_visibility, RESTORE, result):
                clear_original_status(user_id, platform, content_id, db)

    async def _change_item(self, user_id: int, adapter: BasePlatformAdapter, credentials: PlatformCredentials,
                           content_id: str, visibility, action: str, result: PlatformResult) -> bool:
        """Set one item's visibility, recording success or a per-item error"""
        platform = adapter.platform
        try:
            await adapter.set_visibility(credentials, content_id, visibility)
        except Exception as e:
            result.failed += 1
            result.errors.append(ItemError(content_id=content_id, error=str(e)))
            item_failures_counter.labels(platform=platform, action=action).inc()
            visibility_logger.error(
                f"Failed to {action} {platform} item {content_id} for user {user_id}: {e}",
                extra={
                    "user_id": user_id,
                    "platform": platform,
                    "content_id": content_id,
                    "error_type": type(e).__name__,
                },
                exc_info=not isinstance(e, PlatformAPIError)
            )
            return False

        result.successful += 1
        items_changed_counter.labels(platform=platform, action=action).inc()
        visibility_logger.debug(f"{action.capitalize()} {platform} item {content_id} (user {user_id})")
        return True
