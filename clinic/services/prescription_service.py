from typing import List
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import ConflictError, ForbiddenError, NotFoundError, StoreFailure
from ..core.security import Principal, UserRole
from ..models.appointment import Appointment, AppointmentStatus
from ..models.prescription import Prescription
from ..scheduling.store import AppointmentStore, PrescriptionStore
from ..schemas.prescription import PrescriptionCreate

logger = logging.getLogger(__name__)

class PrescriptionService:
    def __init__(self, db: Session):
        self.db = db
        self.prescriptions = PrescriptionStore(db)

    def save(self, prescription_data: PrescriptionCreate, doctor_id: int) -> Prescription:
        """Record the prescription of an appointment; each appointment gets at most one."""
        appointment = self._appointment(prescription_data.appointment_id)

        if appointment.doctor_id != doctor_id:
            raise ForbiddenError(
                "Appointment belongs to another doctor",
                appointment_id=appointment.id,
            )
        if appointment.status == AppointmentStatus.CANCELLED:
            raise ConflictError(
                "Cannot prescribe for a cancelled appointment",
                appointment_id=appointment.id,
            )
        if self.prescriptions.find_for_appointment(appointment.id):
            logger.warning(f"Prescription already exists for appointment {appointment.id}")
            raise ConflictError(
                "Prescription already exists for this appointment",
                appointment_id=appointment.id,
            )

        prescription = Prescription(
            appointment_id=appointment.id,
            medication=prescription_data.medication.strip(),
            dosage=prescription_data.dosage.strip(),
            doctor_notes=prescription_data.doctor_notes,
        )

        try:
            self.prescriptions.save(prescription)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(
                "Prescription already exists for this appointment",
                appointment_id=appointment.id,
            ) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception(f"Store failure saving prescription for appointment {appointment.id}")
            raise StoreFailure("The prescription store is unavailable, please retry") from exc

        self.db.refresh(prescription)
        logger.info(f"Prescription saved for appointment {appointment.id}")
        return prescription

    def for_appointment(self, appointment_id: int, requester: Principal) -> List[Prescription]:
        """Prescriptions of an appointment, readable by its doctor and its patient."""
        appointment = self._appointment(appointment_id)

        owner_id = {
            UserRole.DOCTOR: appointment.doctor_id,
            UserRole.PATIENT: appointment.patient_id,
        }.get(requester.role)
        if owner_id != requester.id:
            raise ForbiddenError(
                "Appointment belongs to someone else",
                appointment_id=appointment_id,
            )

        return self.prescriptions.find_for_appointment(appointment_id)

    def _appointment(self, appointment_id: int) -> Appointment:
        appointment = AppointmentStore(self.db).find_by_id(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment not found", appointment_id=appointment_id)
        return appointment
