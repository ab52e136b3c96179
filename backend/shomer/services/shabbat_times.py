"""Shabbat time source and hide/restore offset calculation

A quiet period is resolved either from the admin override stored in
system settings or from a location's weekly entry/exit table projected onto
the upcoming Friday/Saturday in the reference timezone. When the Hebcal
provider is enabled, the table is only the fallback.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Dict, Optional, Tuple
from zoneinfo import ZoneInfo

import httpx
from sqlalchemy.orm import Session

from shomer.core.config import settings
from shomer.db.helpers import get_system_setting, set_system_setting

shabbat_times_logger = logging.getLogger("shabbat_times")

ADMIN_LOCATION_ID = "admin"
ADMIN_ENTRY_KEY = "admin_shabbat_entry"
ADMIN_EXIT_KEY = "admin_shabbat_exit"

FRIDAY = 4  # date.weekday()


class HideOffset(str, Enum):
    """How long before Shabbat entry content is hidden"""
    AT_ENTRY = "immediate"
    MINUTES_15 = "15min"
    MINUTES_30 = "30min"
    HOUR_1 = "1hour"

    @property
    def delta(self) -> timedelta:
        return _OFFSET_DELTAS[self.value]

    @classmethod
    def from_string(cls, value: Optional[str]) -> "HideOffset":
        """Parse a stored preference, defaulting to one hour before entry"""
        if not value:
            return cls.HOUR_1
        return cls(value)


class RestoreOffset(str, Enum):
    """How long after Shabbat exit content is restored"""
    AT_EXIT = "immediate"
    MINUTES_30 = "30min"
    HOUR_1 = "1hour"

    @property
    def delta(self) -> timedelta:
        return _OFFSET_DELTAS[self.value]

    @classmethod
    def from_string(cls, value: Optional[str]) -> "RestoreOffset":
        """Parse a stored preference, defaulting to restore at exit"""
        if not value:
            return cls.AT_EXIT
        return cls(value)


_OFFSET_DELTAS = {
    "immediate": timedelta(0),
    "15min": timedelta(minutes=15),
    "30min": timedelta(minutes=30),
    "1hour": timedelta(hours=1),
}


@dataclass(frozen=True)
class Location:
    """A supported location with its weekly entry/exit clock times"""
    id: str
    name: str
    geonameid: int
    entry: time
    exit: time


@dataclass(frozen=True)
class QuietPeriod:
    """Shabbat interval as absolute UTC instants"""
    entry: datetime
    exit: datetime
    location_id: str


LOCATIONS: Dict[str, Location] = {
    "281": Location("281", "Jerusalem", 281184, time(19, 15), time(20, 25)),
    "531": Location("531", "Tel Aviv", 293397, time(19, 25), time(20, 29)),
    "294": Location("294", "Haifa", 294801, time(19, 30), time(20, 35)),
    "688": Location("688", "Beer Sheva", 295530, time(19, 20), time(20, 25)),
    "695": Location("695", "Safed", 293100, time(19, 20), time(20, 23)),
}


def reference_timezone() -> ZoneInfo:
    return ZoneInfo(settings.SHABBAT_TIMEZONE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def current_friday(now: datetime) -> date:
    """Friday of the current week in the reference timezone, on or before now"""
    local_now = now.astimezone(reference_timezone())
    return local_now.date() - timedelta(days=(local_now.weekday() - FRIDAY) % 7)


def project_weekly_times(location: Location, friday: date) -> QuietPeriod:
    """Place a location's weekly clock times on a concrete Friday/Saturday pair"""
    tz = reference_timezone()
    entry = datetime.combine(friday, location.entry, tzinfo=tz)
    exit_ = datetime.combine(friday + timedelta(days=1), location.exit, tzinfo=tz)
    return QuietPeriod(
        entry=entry.astimezone(timezone.utc),
        exit=exit_.astimezone(timezone.utc),
        location_id=location.id,
    )


async def fetch_hebcal_times(location: Location, friday: date) -> Optional[QuietPeriod]:
    """Fetch candle lighting and havdalah for one Friday from Hebcal

    Returns:
        QuietPeriod, or None if Hebcal is unreachable or returned incomplete data
    """
    params = {
        "cfg": "json",
        "geonameid": location.geonameid,
        "M": "on",
        "date": friday.isoformat(),
    }
    try:
        async with httpx.AsyncClient(timeout=settings.HEBCAL_TIMEOUT_SECONDS) as client:
            response = await client.get(settings.HEBCAL_API_URL, params=params)
            response.raise_for_status()
            data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        shabbat_times_logger.warning(f"Hebcal request failed for {location.name} ({location.id}): {e}")
        return None

    items = data.get("items") or []
    candles = next((item for item in items if item.get("category") == "candles"), None)
    havdalah = next((item for item in items if item.get("category") == "havdalah"), None)
    if not candles or not havdalah:
        shabbat_times_logger.warning(f"Hebcal returned no candle lighting/havdalah for {location.name} ({location.id})")
        return None

    try:
        entry = datetime.fromisoformat(candles["date"]).astimezone(timezone.utc)
        exit_ = datetime.fromisoformat(havdalah["date"]).astimezone(timezone.utc)
    except (KeyError, TypeError, ValueError) as e:
        shabbat_times_logger.warning(f"Unparseable Hebcal times for {location.name}: {e}")
        return None

    if entry >= exit_:
        return None
    return QuietPeriod(entry=entry, exit=exit_, location_id=location.id)


def get_admin_quiet_period(db: Session) -> Optional[QuietPeriod]:
    """Admin override, returned verbatim when both endpoints exist and are ordered"""
    entry_raw = get_system_setting(ADMIN_ENTRY_KEY, db)
    exit_raw = get_system_setting(ADMIN_EXIT_KEY, db)
    if not entry_raw or not exit_raw:
        return None

    try:
        entry = _as_utc(datetime.fromisoformat(entry_raw))
        exit_ = _as_utc(datetime.fromisoformat(exit_raw))
    except ValueError:
        shabbat_times_logger.error(f"Stored admin Shabbat times are not ISO instants: {entry_raw!r} / {exit_raw!r}")
        return None

    if entry >= exit_:
        shabbat_times_logger.error(f"Stored admin Shabbat times are out of order: {entry.isoformat()} >= {exit_.isoformat()}")
        return None
    return QuietPeriod(entry=entry, exit=exit_, location_id=ADMIN_LOCATION_ID)


def set_admin_quiet_period(entry: datetime, exit_: datetime, db: Session) -> QuietPeriod:
    """Store the admin override

    Raises:
        ValueError: If entry is not strictly before exit
    """
    entry = _as_utc(entry)
    exit_ = _as_utc(exit_)
    if entry >= exit_:
        raise ValueError("Shabbat entry must be before Shabbat exit")

    set_system_setting(ADMIN_ENTRY_KEY, entry.isoformat(), db)
    set_system_setting(ADMIN_EXIT_KEY, exit_.isoformat(), db)
    shabbat_times_logger.info(f"Admin Shabbat times set: entry {entry.isoformat()}, exit {exit_.isoformat()}")
    return QuietPeriod(entry=entry, exit=exit_, location_id=ADMIN_LOCATION_ID)


async def compute_quiet_period(location_id: Optional[str], db: Session, now: Optional[datetime] = None,
                               restore_offset: Optional[str] = None) -> Optional[QuietPeriod]:
    """Resolve the quiet period for a location id or the admin override

    In location mode the current week's Shabbat stays in effect until its
    restore time (exit plus the user's restore offset) has passed.

    Returns:
        QuietPeriod, or None when nothing can be resolved (no location,
        unknown location, incomplete admin override)
    """
    if not location_id:
        return None

    if location_id == ADMIN_LOCATION_ID:
        return get_admin_quiet_period(db)

    location = LOCATIONS.get(location_id)
    if location is None:
        shabbat_times_logger.warning(f"Unknown location id {location_id!r}")
        return None

    now = now or _utcnow()
    restore_grace = RestoreOffset.from_string(restore_offset).delta
    friday = current_friday(now)

    # Only Friday and Saturday can still be inside this week's period
    if now.astimezone(reference_timezone()).date() <= friday + timedelta(days=1):
        period = await _weekly_period(location, friday)
        if now < period.exit + restore_grace:
            return period

    return await _weekly_period(location, friday + timedelta(days=7))


async def _weekly_period(location: Location, friday: date) -> QuietPeriod:
    if settings.SHABBAT_TIMES_PROVIDER == "hebcal":
        period = await fetch_hebcal_times(location, friday)
        if period is not None:
            return period
        shabbat_times_logger.info(f"Using table times for {location.name} ({location.id})")

    return project_weekly_times(location, friday)


def apply_offsets(period: QuietPeriod, hide_offset: HideOffset, restore_offset: RestoreOffset) -> Tuple[datetime, datetime]:
    """Return (hide_at, restore_at) for a quiet period and the user's offsets"""
    hide_at = period.entry - HideOffset(hide_offset).delta
    restore_at = period.exit + RestoreOffset(restore_offset).delta
    return hide_at, restore_at


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are read as reference-timezone wall clock"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=reference_timezone())
    return value.astimezone(timezone.utc)
