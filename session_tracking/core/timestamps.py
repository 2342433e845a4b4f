# Timestamp helpers

from datetime import datetime, timezone


def normalize(value: datetime) -> datetime:
    """UTC, truncated to millisecond precision. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def utc_now() -> datetime:
    return normalize(datetime.now(timezone.utc))


def format_timestamp(value: datetime) -> str:
    """Fixed-width ISO-8601 form, e.g. 2024-01-01T09:30:00.000Z

    Fixed width keeps lexicographic order equal to chronological order.
    """
    value = normalize(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing Z"""
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    return normalize(datetime.fromisoformat(value))
