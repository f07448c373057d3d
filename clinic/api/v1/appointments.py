from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...core.config import settings
from ...core.database import get_db
from ...core.security import Principal
from ...api.deps import get_doctor, get_patient
from ...scheduling.booking import AppointmentOrchestrator
from ...services.doctor_service import DoctorService
from ...schemas.appointment import (
    AppointmentCreate, AppointmentOutcome, AppointmentResponse, AppointmentUpdate
)

router = APIRouter(prefix="/appointments", tags=["Appointments"])

def _duration() -> timedelta:
    return timedelta(minutes=settings.APPOINTMENT_DURATION_MINUTES)

def _outcome(outcome: str, appointment) -> AppointmentOutcome:
    return AppointmentOutcome(
        outcome=outcome,
        appointment=AppointmentResponse.from_appointment(appointment, _duration())
    )

@router.post("", response_model=AppointmentOutcome, status_code=status.HTTP_201_CREATED)
def book_appointment(
    appointment_data: AppointmentCreate,
    principal: Principal = Depends(get_patient),
    db: Session = Depends(get_db)
):
    """Book an appointment for the requesting patient."""
    appointment = AppointmentOrchestrator(db).book(
        appointment_data.doctor_id,
        principal.id,
        appointment_data.appointment_time,
        reason=appointment_data.reason,
    )
    return _outcome("created", appointment)

@router.put("/{appointment_id}", response_model=AppointmentOutcome)
def update_appointment(
    appointment_id: int,
    appointment_data: AppointmentUpdate,
    principal: Principal = Depends(get_patient),
    db: Session = Depends(get_db)
):
    """Reschedule one of the requesting patient's appointments."""
    appointment = AppointmentOrchestrator(db).update(
        appointment_id,
        appointment_data.appointment_time,
        requester_patient_id=principal.id,
    )
    return _outcome("updated", appointment)

@router.delete("/{appointment_id}", response_model=AppointmentOutcome)
def cancel_appointment(
    appointment_id: int,
    principal: Principal = Depends(get_patient),
    db: Session = Depends(get_db)
):
    """Cancel one of the requesting patient's appointments."""
    appointment = AppointmentOrchestrator(db).cancel(
        appointment_id,
        requester_patient_id=principal.id,
    )
    return _outcome("cancelled", appointment)

@router.post("/{appointment_id}/complete", response_model=AppointmentOutcome)
def complete_appointment(
    appointment_id: int,
    principal: Principal = Depends(get_doctor),
    db: Session = Depends(get_db)
):
    """Mark one of the requesting doctor's appointments as completed."""
    appointment = AppointmentOrchestrator(db).complete(
        appointment_id,
        requester_doctor_id=principal.id,
    )
    return _outcome("completed", appointment)

@router.get("", response_model=List[AppointmentResponse])
def list_doctor_appointments(
    date: date = Query(...),
    patient_name: Optional[str] = Query(default=None),
    principal: Principal = Depends(get_doctor),
    db: Session = Depends(get_db)
):
    """The requesting doctor's appointments on one day."""
    appointments = DoctorService(db).appointments_on(principal.id, date, patient_name)

    return [AppointmentResponse.from_appointment(appointment, _duration()) for appointment in appointments]
