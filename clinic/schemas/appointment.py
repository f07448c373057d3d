from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..models.appointment import Appointment, AppointmentStatus


class AppointmentCreate(BaseModel):
    doctor_id: int
    appointment_time: datetime
    reason: Optional[str] = Field(default=None, max_length=600)


class AppointmentUpdate(BaseModel):
    appointment_time: datetime


class AppointmentResponse(BaseModel):
    id: int
    doctor_id: int
    doctor_name: Optional[str] = None
    patient_id: int
    patient_name: Optional[str] = None
    patient_email: Optional[str] = None
    patient_phone: Optional[str] = None
    appointment_time: datetime
    end_time: datetime
    status: int
    status_label: str
    reason: Optional[str] = None

    @classmethod
    def from_appointment(cls, appointment: Appointment, duration) -> "AppointmentResponse":
        status = AppointmentStatus(appointment.status)
        doctor = appointment.doctor
        patient = appointment.patient
        return cls(
            id=appointment.id,
            doctor_id=appointment.doctor_id,
            doctor_name=doctor.name if doctor else None,
            patient_id=appointment.patient_id,
            patient_name=patient.name if patient else None,
            patient_email=patient.email if patient else None,
            patient_phone=patient.phone if patient else None,
            appointment_time=appointment.appointment_time,
            end_time=appointment.appointment_time + duration,
            status=status.value,
            status_label=status.name.lower(),
            reason=appointment.reason,
        )


class AppointmentOutcome(BaseModel):
    outcome: str
    appointment: AppointmentResponse
