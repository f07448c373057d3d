from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.security import Principal
from ...api.deps import get_admin, get_current_principal
from ...services.doctor_service import DoctorService
from ...scheduling.filters import DoctorFilterCriteria
from ...schemas.doctor import (
    AvailabilityResponse, DoctorCreate, DoctorResponse, DoctorUpdate
)

router = APIRouter(prefix="/doctors", tags=["Doctors"])

@router.get("", response_model=List[DoctorResponse])
def list_doctors(db: Session = Depends(get_db)):
    """List every doctor."""
    return DoctorService(db).list_doctors()

@router.get("/filter", response_model=List[DoctorResponse])
def filter_doctors(
    name: Optional[str] = Query(default=None),
    specialty: Optional[str] = Query(default=None),
    time_of_day: Optional[str] = Query(default=None, description="AM or PM"),
    reference_date: Optional[date] = Query(default=None),
    db: Session = Depends(get_db)
):
    """Filter doctors by name, specialty and AM/PM availability."""
    criteria = DoctorFilterCriteria(
        name=name,
        specialty=specialty,
        time_of_day=time_of_day,
        reference_date=reference_date,
    )
    return DoctorService(db).filter_doctors(criteria)

@router.get("/{doctor_id}", response_model=DoctorResponse)
def get_doctor(doctor_id: int, db: Session = Depends(get_db)):
    return DoctorService(db).get_doctor(doctor_id)

@router.get("/{doctor_id}/availability", response_model=AvailabilityResponse)
def get_availability(
    doctor_id: int,
    date: date = Query(...),
    db: Session = Depends(get_db),
    _: Principal = Depends(get_current_principal)
):
    """Free and booked slots of a doctor for one day."""
    result = DoctorService(db).availability(doctor_id, date)
    return AvailabilityResponse.from_result(result)

# Admin routes
@router.post("", response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor(
    doctor_data: DoctorCreate,
    db: Session = Depends(get_db),
    _: Principal = Depends(get_admin)
):
    """Add a doctor (admin only)."""
    return DoctorService(db).create_doctor(doctor_data)

@router.put("/{doctor_id}", response_model=DoctorResponse)
def update_doctor(
    doctor_id: int,
    doctor_data: DoctorUpdate,
    db: Session = Depends(get_db),
    _: Principal = Depends(get_admin)
):
    """Update a doctor (admin only)."""
    return DoctorService(db).update_doctor(doctor_id, doctor_data)

@router.delete("/{doctor_id}")
def delete_doctor(
    doctor_id: int,
    db: Session = Depends(get_db),
    _: Principal = Depends(get_admin)
):
    """Delete a doctor and their appointments (admin only)."""
    DoctorService(db).delete_doctor(doctor_id)
    return {"message": "Doctor deleted"}
