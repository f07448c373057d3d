"""
Slot grid generation.

A clinic day is offered as a grid of candidate start times spaced by a fixed
granularity, from the opening time up to and including the closing time.
The grid is a value: it can be iterated any number of times and never
touches the database.
"""
from datetime import date, datetime, time, timedelta
from typing import Iterator, NamedTuple, Optional

from ..core.config import settings
from ..core.errors import InvalidRequestError


class TimeSlot(NamedTuple):
    """A bookable window starting on the grid."""
    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and start < self.end


class SlotGrid:
    """Restartable, ordered sequence of slot start instants for one day."""

    def __init__(
        self,
        day: date,
        day_start: time,
        day_end: time,
        granularity: timedelta,
        duration: timedelta,
    ):
        if granularity <= timedelta(0):
            raise InvalidRequestError(
                "Slot granularity must be positive",
                granularity_minutes=granularity.total_seconds() / 60,
            )
        if day_end < day_start:
            raise InvalidRequestError(
                "Working window ends before it starts",
                day_start=day_start,
                day_end=day_end,
            )

        self.day = day
        self.first = datetime.combine(day, day_start)
        self.last = datetime.combine(day, day_end)
        self.granularity = granularity
        self.duration = duration

    def __iter__(self) -> Iterator[datetime]:
        current = self.first
        while current <= self.last:
            yield current
            current += self.granularity

    def __len__(self) -> int:
        return int((self.last - self.first) // self.granularity) + 1

    def __contains__(self, instant: datetime) -> bool:
        if instant < self.first or instant > self.last:
            return False
        return (instant - self.first) % self.granularity == timedelta(0)

    def slots(self) -> Iterator[TimeSlot]:
        for start in self:
            yield TimeSlot(start, start + self.duration)

    @property
    def window_end(self) -> datetime:
        """Latest instant any slot on the grid can still occupy."""
        return self.last + self.duration


def generate_slots(
    day: date,
    day_start: Optional[time] = None,
    day_end: Optional[time] = None,
    granularity_minutes: Optional[int] = None,
    duration_minutes: Optional[int] = None,
) -> SlotGrid:
    """Build the slot grid for ``day`` from the configured working window."""
    granularity = settings.SLOT_GRANULARITY_MINUTES if granularity_minutes is None else granularity_minutes
    duration = settings.APPOINTMENT_DURATION_MINUTES if duration_minutes is None else duration_minutes

    return SlotGrid(
        day,
        day_start or settings.WORKDAY_START,
        day_end or settings.WORKDAY_END,
        timedelta(minutes=granularity),
        timedelta(minutes=duration),
    )


def normalize_start(instant: datetime) -> datetime:
    """Drop seconds so a requested start lines up with a minute boundary.

    Times are clinic wall-clock times; any offset sent by a client is
    discarded rather than converted.
    """
    return instant.replace(second=0, microsecond=0, tzinfo=None)
