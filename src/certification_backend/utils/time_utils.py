from datetime import datetime, timezone

from certification_backend.utils.base_types import IsoTimestamp


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> IsoTimestamp:
    return IsoTimestamp(moment.astimezone(timezone.utc).isoformat())


def parse_iso(value: str) -> datetime:
    """
    Parses an ISO8601 timestamp. Naive values are assumed to be UTC, and a trailing "Z"
    is accepted since that is what browsers send for exam dates.
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
