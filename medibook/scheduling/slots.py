"""Hourly slot generation from weekly availability rules."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable

from medibook.scheduling.availability import WEEKDAY_NAMES, AvailabilityRule

logger = logging.getLogger(__name__)

SLOT_WINDOW_DAYS = 7
COLLISION_LOOKAHEAD_DAYS = SLOT_WINDOW_DAYS + 1
LAST_HOUR_BOUNDARY = 24

_DAY_ABBREVIATIONS = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')
_MONTH_ABBREVIATIONS = ('Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun', 'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec')


@dataclass(frozen=True)
class Slot:
    id: str
    date: str
    time: str
    date_time: datetime
    available: bool


def format_slot_date(day: date) -> str:
    return f'{_DAY_ABBREVIATIONS[day.weekday()]}, {_MONTH_ABBREVIATIONS[day.month - 1]} {day.day}'


def format_slot_time(hour: int) -> str:
    suffix = 'AM' if hour < 12 else 'PM'
    return f'{hour % 12 or 12}:00 {suffix}'


def parse_hour(value: str) -> int | None:
    """Return the hour of an ``HH:MM`` string, or None when it is unusable."""
    if not value:
        return None

    parts = value.split(':')
    if len(parts) < 2:
        return None

    hour_text = parts[0].strip()
    if not (hour_text.isascii() and hour_text.isdigit()):
        return None

    hour = int(hour_text)
    if hour > LAST_HOUR_BOUNDARY:
        return None
    return hour


def truncate_to_hour(moment: datetime) -> datetime:
    return moment.replace(minute=0, second=0, microsecond=0)


def collision_window(now: datetime) -> tuple[datetime, datetime]:
    """Range of stored appointments that can collide with generated slots."""
    start_of_today = datetime.combine(now.date(), datetime.min.time())
    return start_of_today, start_of_today + timedelta(days=COLLISION_LOOKAHEAD_DAYS)


def generate_slots(
    rules: Iterable[AvailabilityRule],
    booked: Iterable[datetime],
    now: datetime,
    days: int = SLOT_WINDOW_DAYS,
) -> list[Slot]:
    """Build the bookable hourly slots for the ``days`` days after ``now``.

    Today is never included. A slot is marked unavailable, not dropped, when a
    booked instant falls in the same calendar hour. Overlapping rules yield
    repeated slots; callers get them as-is.
    """
    rules = list(rules)
    if not rules:
        return []

    booked_hours = {truncate_to_hour(moment) for moment in booked}
    slots: list[Slot] = []

    for offset in range(1, days + 1):
        day = now.date() + timedelta(days=offset)
        day_name = WEEKDAY_NAMES[day.weekday()]

        for rule in rules:
            if rule.day != day_name:
                continue

            start_hour = parse_hour(rule.startTime)
            end_hour = parse_hour(rule.endTime)
            if start_hour is None or end_hour is None:
                logger.debug('Skipping malformed availability rule: %s', rule)
                continue

            for hour in range(start_hour, min(end_hour, LAST_HOUR_BOUNDARY)):
                candidate = datetime.combine(day, datetime.min.time()).replace(hour=hour)
                if candidate <= now:
                    continue

                slots.append(
                    Slot(
                        id=f'{day.isoformat()}-{hour}',
                        date=format_slot_date(day),
                        time=format_slot_time(hour),
                        date_time=candidate,
                        available=candidate not in booked_hours,
                    )
                )

    return slots


def group_slots_by_date(slots: Iterable[Slot]) -> dict[str, list[Slot]]:
    groups: dict[str, list[Slot]] = {}
    for slot in slots:
        groups.setdefault(slot.date, []).append(slot)
    return groups
