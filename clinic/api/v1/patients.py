from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...core.config import settings
from ...core.database import get_db
from ...core.security import Principal
from ...api.deps import get_patient, rate_limit_check
from ...services.patient_service import PatientService
from ...schemas.appointment import AppointmentResponse
from ...schemas.patient import PatientRegister, PatientResponse

router = APIRouter(prefix="/patients", tags=["Patients"])

@router.post("", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
def register_patient(
    patient_data: PatientRegister,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Register a new patient."""
    return PatientService(db).register_patient(patient_data)

@router.get("/me", response_model=PatientResponse)
def get_patient_details(
    principal: Principal = Depends(get_patient),
    db: Session = Depends(get_db)
):
    return PatientService(db).get_patient(principal.id)

@router.get("/me/appointments", response_model=List[AppointmentResponse])
def list_patient_appointments(
    condition: Optional[str] = Query(default=None, description="past or future"),
    doctor_name: Optional[str] = Query(default=None),
    principal: Principal = Depends(get_patient),
    db: Session = Depends(get_db)
):
    """The requesting patient's appointments."""
    appointments = PatientService(db).appointments(principal.id, condition, doctor_name)
    duration = timedelta(minutes=settings.APPOINTMENT_DURATION_MINUTES)

    return [AppointmentResponse.from_appointment(appointment, duration) for appointment in appointments]
