"""Blockbrief Backend - UTC time window helpers"""

from datetime import datetime, timedelta, timezone


def to_iso(dt: datetime) -> str:
    """Millisecond UTC ISO string with a trailing Z."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO timestamp. Floating (offset-less) values are read as UTC."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _base(now: str | None) -> datetime:
    parsed = parse_iso(now) if now else None
    return parsed or datetime.now(timezone.utc)


def now_utc_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def days_ago_iso(days: int, now: str | None = None) -> str:
    return to_iso(_base(now) - timedelta(days=days))


def days_ahead_iso(days: int, now: str | None = None) -> str:
    return to_iso(_base(now) + timedelta(days=days))


def minus_days(iso: str, days: int) -> str:
    return days_ago_iso(days, now=iso)


def to_iso_or_none(value: str | None) -> str | None:
    dt = parse_iso(value)
    return to_iso(dt) if dt else None


def parse_mm_dd_yyyy(value: str | None) -> str | None:
    """DOB issuance dates arrive as MM/DD/YYYY text."""
    if not value:
        return None
    try:
        dt = datetime.strptime(value.strip(), "%m/%d/%Y")
    except ValueError:
        return None
    return to_iso(dt.replace(tzinfo=timezone.utc))


def duration_days(start: str | None, end: str | None) -> int:
    s, e = parse_iso(start), parse_iso(end)
    if s is None or e is None or e < s:
        return 0
    return max(1, int((e - s).total_seconds() / 86400 + 0.5))


def is_active_now(start: str | None, end: str | None, now: str | None) -> bool:
    s, e, n = parse_iso(start), parse_iso(end), parse_iso(now)
    if s is None or e is None or n is None:
        return False
    return s <= n <= e
