"""
Task Schedules

Crontab expressions stored on tasks, evaluated with APScheduler's
``CronTrigger`` in UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.triggers.cron import CronTrigger


def parse_schedule(schedule: str) -> CronTrigger:
    """Parse a 5-field crontab expression. Raises ``ValueError`` if invalid."""
    if not schedule or len(schedule.split()) != 5:
        raise ValueError(f"Schedule must have 5 fields: {schedule!r}")
    return CronTrigger.from_crontab(schedule, timezone="UTC")


def validate_schedule(schedule: str) -> str:
    parse_schedule(schedule)
    return schedule.strip()


def next_run_after(schedule: str, after: datetime) -> Optional[datetime]:
    """First fire time strictly after ``after``."""
    if after.tzinfo is None:
        after = after.replace(tzinfo=timezone.utc)
    trigger = parse_schedule(schedule)
    return trigger.get_next_fire_time(None, after + timedelta(seconds=1))


def describe_schedule(schedule: str) -> str:
    """Short human readable form used by task listings."""
    parts = schedule.split()
    if len(parts) != 5:
        return schedule
    minute, hour, day, month, weekday = parts
    if not (minute.isdigit() and (day, month, weekday) == ("*", "*", "*")):
        return schedule
    if hour.isdigit():
        return f"Daily at {int(hour):02d}:{int(minute):02d}"
    if hour == "*":
        return f"Every hour at :{int(minute):02d}"
    return schedule
