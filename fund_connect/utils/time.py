"""
Timestamp helpers

All timestamps written to the database are UTC ISO-8601 strings assigned by
this server.
"""
from datetime import datetime, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp column value.

    Accepts datetimes and ISO strings (including a trailing 'Z'); naive values
    are taken as UTC. Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
