"""Timezone-aware datetime helpers used by the round clock."""

from __future__ import annotations

import datetime as dt

UTC = dt.timezone.utc


def now_utc() -> dt.datetime:
    """Return the current time as an aware ``datetime`` in UTC."""

    return dt.datetime.now(UTC)


def now_ms() -> int:
    """Return wall-clock time as integer milliseconds since the epoch."""

    return to_epoch_ms(now_utc())


def _ensure_aware_utc(value: dt.datetime) -> dt.datetime:
    """Coerce ``value`` to an aware UTC datetime without altering the instant."""

    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_epoch_ms(value: dt.datetime) -> int:
    """Return ``value`` as epoch milliseconds, assuming UTC when naive."""

    aware = _ensure_aware_utc(value)
    delta = aware - dt.datetime(1970, 1, 1, tzinfo=UTC)
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def from_epoch_ms(value: int) -> dt.datetime:
    """Return an aware UTC ``datetime`` for epoch milliseconds ``value``."""

    return dt.datetime(1970, 1, 1, tzinfo=UTC) + dt.timedelta(milliseconds=value)


__all__ = [
    "UTC",
    "now_utc",
    "now_ms",
    "to_epoch_ms",
    "from_epoch_ms",
]
