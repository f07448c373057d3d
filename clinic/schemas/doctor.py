from datetime import date, datetime
from typing import List, Optional
import re

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from ..scheduling.availability import AvailabilityResult

PHONE_PATTERN = re.compile(r"^\d{10}$")


def _normalize_email(value):
    # Runs before EmailStr validation; addresses are stored lower-cased
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _normalize_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = value.strip()
    if not PHONE_PATTERN.match(normalized):
        raise ValueError("Phone number must be 10 digits")
    return normalized


class DoctorCreate(BaseModel):
    name: str = Field(min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6)
    specialty: str = Field(min_length=3, max_length=100)
    phone: Optional[str] = None

    normalize_email = field_validator("email", mode="before")(_normalize_email)
    normalize_phone = field_validator("phone")(_normalize_phone)


class DoctorUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=3, max_length=100)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=6)
    specialty: Optional[str] = Field(default=None, min_length=3, max_length=100)
    phone: Optional[str] = None

    normalize_email = field_validator("email", mode="before")(_normalize_email)
    normalize_phone = field_validator("phone")(_normalize_phone)


class DoctorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    specialty: str
    phone: Optional[str] = None


class SlotResponse(BaseModel):
    start: datetime
    end: datetime
    status: str


class AvailabilityResponse(BaseModel):
    doctor_id: int
    date: date
    total_slots: int
    free_slots: int
    booked_slots: int
    slots: List[SlotResponse]

    @classmethod
    def from_result(cls, result: AvailabilityResult) -> "AvailabilityResponse":
        slots = [
            SlotResponse(
                start=entry.slot.start,
                end=entry.slot.end,
                status=entry.status.value,
            )
            for entry in result
        ]
        free = len(result.free_slots)
        return cls(
            doctor_id=result.doctor_id,
            date=result.day,
            total_slots=len(result),
            free_slots=free,
            booked_slots=len(result) - free,
            slots=slots,
        )
