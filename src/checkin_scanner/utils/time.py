from __future__ import annotations

from datetime import datetime, timezone


def _coerce_datetime(value: datetime | str) -> datetime:
    if isinstance(value, str):
        candidate = value.strip().replace("Z", "+00:00")
        try:
            value = datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise ValueError(f"Unsupported datetime value: {value!r}") from exc

    if not isinstance(value, datetime):
        raise ValueError(f"Unsupported datetime value: {value!r}")

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def format_relative_time(value: datetime | str, *, now: datetime | None = None) -> str:
    reference = _coerce_datetime(now or datetime.now(timezone.utc))
    moment = _coerce_datetime(value)

    total_seconds = int((reference - moment).total_seconds())
    if total_seconds < 60:
        return "Just now"

    minutes = total_seconds // 60
    if minutes < 60:
        return _plural(minutes, "minute")

    hours = minutes // 60
    if hours < 24:
        return _plural(hours, "hour")

    days = hours // 24
    if days < 30:
        return _plural(days, "day")

    return _plural(days // 30, "month")
