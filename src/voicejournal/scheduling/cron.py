"""
Local time to UTC cron conversion.

Uses a fixed offset table rather than a timezone database: daylight-saving
transitions are not tracked, so fire times drift by the DST delta for part
of the year. Every schedule edit re-derives the expression from scratch.
"""

import re

from voicejournal.shared.exceptions import ValidationError

# Standard-time UTC offsets in minutes.
TIMEZONE_OFFSET_MINUTES: dict[str, int] = {
    "America/New_York": -5 * 60,
    "America/Chicago": -6 * 60,
    "America/Denver": -7 * 60,
    "America/Los_Angeles": -8 * 60,
    "America/Anchorage": -9 * 60,
    "Pacific/Honolulu": -10 * 60,
    "Europe/London": 0,
    "Europe/Dublin": 0,
    "Europe/Lisbon": 0,
    "Europe/Paris": 1 * 60,
    "Europe/Berlin": 1 * 60,
    "Europe/Amsterdam": 1 * 60,
    "Europe/Madrid": 1 * 60,
    "Europe/Rome": 1 * 60,
    "Europe/Athens": 2 * 60,
    "Asia/Dubai": 4 * 60,
    "Asia/Shanghai": 8 * 60,
    "Asia/Singapore": 8 * 60,
    "Asia/Tokyo": 9 * 60,
    "Australia/Sydney": 11 * 60,
    "Australia/Melbourne": 11 * 60,
    "UTC": 0,
}

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_SCHEDULE_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9]")

MINUTES_PER_DAY = 24 * 60


def is_supported_timezone(timezone: str) -> bool:
    return timezone in TIMEZONE_OFFSET_MINUTES


def utc_fire_time(local_time: str, timezone: str) -> tuple[int, int]:
    """Convert a local HH:MM in ``timezone`` to a UTC (hour, minute).

    Raises:
        ValidationError: If the time is not HH:MM or the timezone is unsupported.
    """
    if not TIME_PATTERN.match(local_time or ""):
        raise ValidationError(
            message="Invalid time format. Use HH:MM (24-hour format)",
            details={"preferredCallTime": local_time},
        )
    if timezone not in TIMEZONE_OFFSET_MINUTES:
        raise ValidationError(
            message=f"Unsupported timezone: {timezone}",
            details={"timezone": timezone},
        )

    hours, minutes = (int(part) for part in local_time.split(":"))
    utc_minutes = (hours * 60 + minutes - TIMEZONE_OFFSET_MINUTES[timezone]) % MINUTES_PER_DAY
    return divmod(utc_minutes, 60)


def to_cron_expression(local_time: str, timezone: str) -> str:
    """Daily EventBridge Scheduler cron expression, evaluated in UTC."""
    hour, minute = utc_fire_time(local_time, timezone)
    return f"cron({minute} {hour} * * ? *)"


def schedule_name(user_id: str) -> str:
    """Trigger name for a user (names must match ``[.\\-_A-Za-z0-9]+``)."""
    return f"user-call-{_SCHEDULE_NAME_UNSAFE.sub('-', user_id)}"
