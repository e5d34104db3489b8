from datetime import date
import calendar
import re

from moneymind.errors import InvalidInput

PERIOD_KEY_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def period_key_for(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def period_window(period_key: str) -> tuple[date, date]:
    # Budget rows are keyed by "YYYY-MM"; the window is inclusive on both ends.
    match = PERIOD_KEY_RE.match(period_key or "")
    if not match:
        raise InvalidInput("period_key", "must look like YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])
