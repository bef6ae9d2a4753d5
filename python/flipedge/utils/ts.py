from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current time in UTC."""
    return datetime.now(timezone.utc)


def to_timestamp_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def from_timestamp_ms(ts_ms: int) -> datetime:
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)
