# slotsync/utils/datetime_utils.py
from datetime import date, datetime, time, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_hhmm(value: str) -> time:
    """'09:30' -> time(9, 30)"""
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def at_utc(day: date, clock_time: str) -> datetime:
    """Combine a calendar day and an HH:MM rule time as a UTC instant"""
    return datetime.combine(day, parse_hhmm(clock_time), tzinfo=timezone.utc)
