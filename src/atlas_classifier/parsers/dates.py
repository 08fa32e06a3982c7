"""Date normalization for extracted document fields."""

import re
from datetime import date

# Day-first forms used on Spanish documents, then ISO (optionally with a time part).
_DAY_FIRST_PATTERN = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})$")
_ISO_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:[T ].*)?$")


def normalize_date(text: str | None) -> date | None:
    """Parse DD/MM/YYYY, DD-MM-YYYY, DD.MM.YYYY or ISO text into a date.

    Returns None for anything else, including impossible calendar dates.
    """
    if not text:
        return None
    candidate = text.strip()

    match = _DAY_FIRST_PATTERN.match(candidate)
    if match:
        day, month, year = (int(part) for part in match.groups())
    else:
        match = _ISO_PATTERN.match(candidate)
        if not match:
            return None
        year, month, day = (int(part) for part in match.groups())

    try:
        return date(year, month, day)
    except ValueError:
        return None


def to_iso(day: date | None) -> str | None:
    """Render a date as YYYY-MM-DD."""
    return day.isoformat() if day else None
