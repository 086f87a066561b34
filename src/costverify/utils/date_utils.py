from datetime import datetime, timezone
from typing import Optional, Union


def parse_iso_date(value: str) -> Optional[datetime]:
    """
    Parses an RFC 3339 timestamp as returned by the allocation API.
    A trailing 'Z' is accepted on every supported Python version.
    Returns None for empty or unparseable input.
    """
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def ensure_utc(dt: Union[datetime, str]) -> datetime:
    """Returns `dt` as an aware UTC datetime; naive values are taken to be UTC."""
    if isinstance(dt, str):
        parsed = parse_iso_date(dt)
        if parsed is None:
            raise ValueError(f"Invalid date string: {dt}")
        dt = parsed
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def from_unix(seconds: float) -> datetime:
    """Converts Unix seconds to an aware UTC datetime, dropping sub-second precision."""
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc)


def to_unix(dt: datetime) -> int:
    return int(ensure_utc(dt).timestamp())
