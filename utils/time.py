# utils/time.py
from datetime import datetime, time as dtime
from typing import Optional

# instrument master files are republished every trading morning
MASTER_PUBLISH_TIME = dtime(hour=8, minute=30)

_EXPIRY_FORMATS = ("%d-%b-%Y", "%Y-%m-%d", "%d-%m-%Y", "%d%b%Y")


def publish_cutoff(now: Optional[datetime] = None, at: dtime = MASTER_PUBLISH_TIME) -> datetime:
    """Local datetime of today's publish time; files older than this are stale."""
    now = now or datetime.now()
    return now.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)


def parse_expiry(value: Optional[str]) -> Optional[datetime]:
    """Parse an instrument expiry string ("26-DEC-2024", "2024-12-26", ...). None if unparseable."""
    if not value:
        return None
    s = str(value).strip()
    for fmt in _EXPIRY_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None
