"""
Conflict detection for a single doctor.

Two appointments of the same doctor conflict when their
``[start, start + duration)`` intervals intersect. Intervals that only
touch at a boundary do not conflict.
"""
import enum
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import DoctorNotFoundError
from ..models.appointment import Appointment, ACTIVE_STATUSES
from .store import AppointmentStore, DoctorDirectory


class SlotDecision(str, enum.Enum):
    AVAILABLE = "available"
    CONFLICT = "conflict"


class ConflictValidator:
    def __init__(self, db: Session, duration: Optional[timedelta] = None):
        self.appointments = AppointmentStore(db)
        self.doctors = DoctorDirectory(db)
        self.duration = duration or timedelta(minutes=settings.APPOINTMENT_DURATION_MINUTES)

    def conflicting(
        self,
        doctor_id: int,
        requested_start: datetime,
        exclude_appointment_id: Optional[int] = None,
    ) -> List[Appointment]:
        # Any start in (requested - duration, requested + duration) overlaps
        lower = requested_start - self.duration
        candidates = self.appointments.find_by_doctor_and_range(
            doctor_id,
            lower,
            requested_start + self.duration,
            statuses=ACTIVE_STATUSES,
            exclude_id=exclude_appointment_id,
        )
        return [appointment for appointment in candidates if appointment.appointment_time > lower]

    def validate(
        self,
        doctor_id: int,
        requested_start: datetime,
        exclude_appointment_id: Optional[int] = None,
    ) -> SlotDecision:
        if self.doctors.find_by_id(doctor_id) is None:
            raise DoctorNotFoundError(doctor_id)

        if self.conflicting(doctor_id, requested_start, exclude_appointment_id):
            return SlotDecision.CONFLICT
        return SlotDecision.AVAILABLE
