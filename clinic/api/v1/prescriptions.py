from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.security import Principal, UserRole
from ...api.deps import get_doctor, require_role
from ...services.prescription_service import PrescriptionService
from ...schemas.prescription import PrescriptionCreate, PrescriptionResponse

router = APIRouter(prefix="/prescriptions", tags=["Prescriptions"])

@router.post("", response_model=PrescriptionResponse, status_code=status.HTTP_201_CREATED)
def save_prescription(
    prescription_data: PrescriptionCreate,
    principal: Principal = Depends(get_doctor),
    db: Session = Depends(get_db)
):
    """Prescribe for one of the requesting doctor's appointments."""
    return PrescriptionService(db).save(prescription_data, principal.id)

@router.get("", response_model=List[PrescriptionResponse])
def get_prescriptions(
    appointment_id: int = Query(...),
    principal: Principal = Depends(require_role([UserRole.DOCTOR, UserRole.PATIENT])),
    db: Session = Depends(get_db)
):
    return PrescriptionService(db).for_appointment(appointment_id, principal)
