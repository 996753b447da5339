from datetime import datetime
from typing import Protocol

__all__ = ["ALWAYS", "Schedule", "WeekMap"]

DAYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


class Schedule(Protocol):
    def permits(self, when: datetime) -> bool: ...


def _parse_days(text: str) -> set[int]:
    if text == "*":
        return set(range(7))
    days = set()
    for part in text.split(","):
        first, _, last = part.partition("-")
        try:
            start = DAYS.index(first)
            end = DAYS.index(last) if last else start
        except ValueError:
            raise ValueError(f"Invalid day: {part!r}") from None
        if end < start:
            raise ValueError(f"Invalid day range: {part!r}")
        days.update(range(start, end + 1))
    return days


def _parse_hours(text: str) -> set[int]:
    if text == "*":
        return set(range(24))
    hours = set()
    for part in text.split(","):
        first, sep, last = part.partition("-")
        try:
            start = int(first)
            end = int(last) if sep else start + 1
        except ValueError:
            raise ValueError(f"Invalid hours: {part!r}") from None
        if not 0 <= start < end <= 24:
            raise ValueError(f"Invalid hour range: {part!r}")
        hours.update(range(start, end))
    return hours


class WeekMap:
    """Hour-by-hour weekly schedule, in the local time of the instants it is asked about."""

    def __init__(self, slots: set[tuple[int, int]] = frozenset()):
        self.slots = frozenset(slots)

    @classmethod
    def parse(cls, text: str):
        """Parse clauses like ``mon-fri:0-8,20-24 sat,sun:*``; ``*`` alone is always."""
        text = text.strip().lower()
        if text == "*":
            return cls({(day, hour) for day in range(7) for hour in range(24)})
        slots = set()
        for clause in text.split():
            days, sep, hours = clause.partition(":")
            if not sep:
                raise ValueError(f"Invalid schedule clause: {clause!r}")
            slots.update(
                (day, hour) for day in _parse_days(days) for hour in _parse_hours(hours)
            )
        return cls(slots)

    def permits(self, when: datetime) -> bool:
        return (when.weekday(), when.hour) in self.slots


ALWAYS = WeekMap.parse("*")
