"""Timestamps stored on jobs and chunks."""
from datetime import datetime, timezone


def utc_now_iso() -> str:
    """Current UTC time as an ISO string with a trailing Z."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def seconds_between(start: str | None, end: str | None) -> float | None:
    """Elapsed seconds between two stored timestamps, if both are set."""
    started, ended = parse_iso(start), parse_iso(end)
    if started is None or ended is None:
        return None
    return round((ended - started).total_seconds(), 3)
