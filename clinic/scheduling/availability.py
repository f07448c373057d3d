"""
Availability calculation.

Intersects a day's slot grid with the doctor's appointments. A slot is
booked when its start instant falls inside ``[start, start + duration)`` of
an appointment that still occupies the doctor; cancelled appointments
never block anything.
"""
import enum
from datetime import date, datetime, time
from typing import Iterator, List, NamedTuple, Optional

from sqlalchemy.orm import Session

from ..core.errors import DoctorNotFoundError
from ..models.appointment import ACTIVE_STATUSES
from .slots import SlotGrid, TimeSlot, generate_slots
from .store import AppointmentStore, DoctorDirectory


class SlotStatus(str, enum.Enum):
    FREE = "free"
    BOOKED = "booked"


class SlotAvailability(NamedTuple):
    slot: TimeSlot
    status: SlotStatus

    @property
    def is_free(self) -> bool:
        return self.status is SlotStatus.FREE


class AvailabilityResult:
    """Ordered slot statuses for one doctor on one date."""

    def __init__(self, doctor_id: int, day: date, slots: List[SlotAvailability]):
        self.doctor_id = doctor_id
        self.day = day
        self.slots = slots

    def __iter__(self) -> Iterator[SlotAvailability]:
        return iter(self.slots)

    def __len__(self) -> int:
        return len(self.slots)

    @property
    def free_slots(self) -> List[TimeSlot]:
        return [entry.slot for entry in self.slots if entry.is_free]

    @property
    def booked_slots(self) -> List[TimeSlot]:
        return [entry.slot for entry in self.slots if not entry.is_free]

    def has_free_slot(self, after: Optional[time] = None, before: Optional[time] = None) -> bool:
        """Whether any free slot starts within ``[after, before)``."""
        for entry in self.slots:
            if not entry.is_free:
                continue
            start = entry.slot.start.time()
            if after is not None and start < after:
                continue
            if before is not None and start >= before:
                continue
            return True
        return False


class AvailabilityCalculator:
    def __init__(self, db: Session, grid_factory=generate_slots):
        self.appointments = AppointmentStore(db)
        self.doctors = DoctorDirectory(db)
        self.grid_factory = grid_factory

    def availability(self, doctor_id: int, day: date) -> AvailabilityResult:
        if self.doctors.find_by_id(doctor_id) is None:
            raise DoctorNotFoundError(doctor_id)

        grid: SlotGrid = self.grid_factory(day)

        # An appointment that starts before opening can still run into the window
        booked_intervals = [
            (appointment.appointment_time, appointment.appointment_time + grid.duration)
            for appointment in self.appointments.find_by_doctor_and_range(
                doctor_id,
                grid.first - grid.duration,
                grid.window_end,
                statuses=ACTIVE_STATUSES,
            )
        ]

        slots = [
            SlotAvailability(
                slot,
                SlotStatus.BOOKED if _is_booked(slot.start, booked_intervals) else SlotStatus.FREE,
            )
            for slot in grid.slots()
        ]

        return AvailabilityResult(doctor_id, day, slots)


def _is_booked(instant: datetime, intervals) -> bool:
    return any(start <= instant < end for start, end in intervals)
