from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional
from core.config import settings
from core.errors import RewardError, INVALID_ARGUMENT

# getTimezoneOffset() range: UTC+14 is -840, UTC-12 is 720
MIN_TIMEZONE_OFFSET = -840
MAX_TIMEZONE_OFFSET = 720


class LocalDay(NamedTuple):
    """A calendar day at some offset, as ISO strings used for epoch keys."""
    today: str
    yesterday: str


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes coming back from storage as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def resolve_local_day(now: datetime, timezone_offset: Optional[int] = None) -> LocalDay:
    """Resolve today/yesterday at an offset from UTC.

    ``timezone_offset`` is minutes in the JavaScript ``getTimezoneOffset()``
    convention (UTC minus local time); None means the service default.
    """
    if timezone_offset is None:
        timezone_offset = settings.DEFAULT_TIMEZONE_OFFSET_MINUTES
    if not MIN_TIMEZONE_OFFSET <= timezone_offset <= MAX_TIMEZONE_OFFSET:
        raise RewardError(INVALID_ARGUMENT, f"Invalid timezone offset: {timezone_offset}")
    local_now = as_utc(now) - timedelta(minutes=timezone_offset)
    return LocalDay(
        today=local_now.date().isoformat(),
        yesterday=(local_now - timedelta(days=1)).date().isoformat(),
    )
