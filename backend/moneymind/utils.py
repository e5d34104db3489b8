from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import Header, HTTPException


def local_today(tz_name: str | None, *, now: datetime | None = None) -> date:
    """
    Calendar date in the user's timezone.

    'America/Vancouver' at 2026-03-01T05:00Z -> 2026-02-28
    Missing header -> UTC.
    """
    current = now or datetime.now(timezone.utc)
    if not tz_name:
        return current.astimezone(timezone.utc).date()
    try:
        zone = ZoneInfo(tz_name.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {tz_name}") from exc
    return current.astimezone(zone).date()


async def get_local_today(x_timezone: str | None = Header(default=None)) -> date:
    # Day-keyed state (check-ins, programme days) follows the client's IANA zone.
    try:
        return local_today(x_timezone)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail={"field": "X-Timezone", "message": str(exc)}) from exc
