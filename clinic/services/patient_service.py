from typing import List, Optional
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import ConflictError, InvalidRequestError, NotFoundError, StoreFailure
from ..core.security import get_password_hash
from ..models.appointment import Appointment, AppointmentStatus
from ..models.patient import Patient
from ..scheduling.store import AppointmentStore, PatientDirectory
from ..schemas.patient import PatientRegister

logger = logging.getLogger(__name__)

# Appointment history filters offered to patients
CONDITION_STATUSES = {
    "past": AppointmentStatus.COMPLETED,
    "future": AppointmentStatus.SCHEDULED,
}

class PatientService:
    def __init__(self, db: Session):
        self.db = db
        self.directory = PatientDirectory(db)

    def register_patient(self, patient_data: PatientRegister) -> Patient:
        """Register a new patient; email and phone must both be unused."""
        if self.directory.find_by_email_or_phone(patient_data.email, patient_data.phone):
            raise ConflictError(
                "Patient with this email or phone already exists",
                email=patient_data.email,
            )

        patient = Patient(
            name=patient_data.name.strip(),
            email=patient_data.email,
            password_hash=get_password_hash(patient_data.password),
            phone=patient_data.phone,
            address=patient_data.address,
        )

        self.db.add(patient)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(
                "Patient with this email or phone already exists",
                email=patient_data.email,
            ) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Store failure during register_patient")
            raise StoreFailure("The patient directory is unavailable, please retry") from exc

        self.db.refresh(patient)
        return patient

    def get_patient(self, patient_id: int) -> Patient:
        patient = self.directory.find_by_id(patient_id)
        if patient is None:
            raise NotFoundError("Patient not found", patient_id=patient_id)
        return patient

    def appointments(
        self,
        patient_id: int,
        condition: Optional[str] = None,
        doctor_name: Optional[str] = None,
    ) -> List[Appointment]:
        """A patient's appointments, filtered by ``past``/``future`` and doctor name."""
        self.get_patient(patient_id)

        status = None
        if condition:
            status = CONDITION_STATUSES.get(condition.strip().lower())
            if status is None:
                raise InvalidRequestError(
                    "Unrecognized filter condition, expected past or future",
                    condition=condition,
                )

        return AppointmentStore(self.db).find_for_patient(
            patient_id, status=status, doctor_name=doctor_name
        )
