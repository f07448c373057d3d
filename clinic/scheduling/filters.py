"""
Doctor search.

Name, specialty and time-of-day filters are independent and optional. The
time-of-day filter keeps a doctor when it still has a free slot in the
requested half of the working window on the reference date.
"""
import enum
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import InvalidRequestError
from ..models.doctor import Doctor
from .availability import AvailabilityCalculator
from .store import DoctorDirectory


class TimeOfDay(str, enum.Enum):
    AM = "AM"
    PM = "PM"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["TimeOfDay"]:
        if value is None or not value.strip():
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise InvalidRequestError(
                "Unrecognized time of day, expected AM or PM",
                time_of_day=value,
            ) from None


class DoctorFilterCriteria(BaseModel):
    name: Optional[str] = None
    specialty: Optional[str] = None
    time_of_day: Optional[TimeOfDay] = None
    reference_date: Optional[date] = None

    @field_validator("name", "specialty")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @field_validator("time_of_day", mode="before")
    @classmethod
    def parse_time_of_day(cls, value):
        if isinstance(value, str):
            return TimeOfDay.parse(value)
        return value


class DoctorFilterIndex:
    def __init__(self, db: Session):
        self.doctors = DoctorDirectory(db)
        self.calculator = AvailabilityCalculator(db)

    def filter(self, criteria: DoctorFilterCriteria) -> List[Doctor]:
        candidates = self._candidates(criteria.name, criteria.specialty)

        if criteria.time_of_day is None:
            return candidates

        day = criteria.reference_date or date.today()
        return [
            doctor for doctor in candidates
            if self._available_in(doctor, day, criteria.time_of_day)
        ]

    def _candidates(self, name: Optional[str], specialty: Optional[str]) -> List[Doctor]:
        if name and not specialty:
            return self.doctors.find_by_name_substring(name)
        if specialty and not name:
            return self.doctors.find_by_specialty(specialty)
        return self.doctors.find_matching(name, specialty)

    def _available_in(self, doctor: Doctor, day: date, time_of_day: TimeOfDay) -> bool:
        result = self.calculator.availability(doctor.id, day)
        if time_of_day is TimeOfDay.AM:
            return result.has_free_slot(before=settings.MIDDAY)
        return result.has_free_slot(after=settings.MIDDAY)
