from datetime import date, datetime, timedelta
from typing import List, Optional
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import ConflictError, DoctorNotFoundError, StoreFailure
from ..core.security import get_password_hash
from ..models.appointment import Appointment
from ..models.doctor import Doctor
from ..scheduling.availability import AvailabilityCalculator, AvailabilityResult
from ..scheduling.filters import DoctorFilterCriteria, DoctorFilterIndex
from ..scheduling.store import AppointmentStore, DoctorDirectory
from ..schemas.doctor import DoctorCreate, DoctorUpdate

logger = logging.getLogger(__name__)

class DoctorService:
    def __init__(self, db: Session):
        self.db = db
        self.directory = DoctorDirectory(db)

    def list_doctors(self) -> List[Doctor]:
        return self.directory.all()

    def get_doctor(self, doctor_id: int) -> Doctor:
        doctor = self.directory.find_by_id(doctor_id)
        if doctor is None:
            raise DoctorNotFoundError(doctor_id)
        return doctor

    def create_doctor(self, doctor_data: DoctorCreate) -> Doctor:
        """Add a doctor; the email must not already be registered."""
        if self.directory.find_by_email(doctor_data.email):
            raise ConflictError("Doctor email already registered", email=doctor_data.email)

        doctor = Doctor(
            name=doctor_data.name.strip(),
            email=doctor_data.email,
            password_hash=get_password_hash(doctor_data.password),
            specialty=doctor_data.specialty.strip(),
            phone=doctor_data.phone,
        )

        self.db.add(doctor)
        self._commit("create_doctor", email=doctor_data.email)
        self.db.refresh(doctor)

        logger.info(f"Created doctor {doctor.id} ({doctor.specialty})")
        return doctor

    def update_doctor(self, doctor_id: int, doctor_data: DoctorUpdate) -> Doctor:
        doctor = self.get_doctor(doctor_id)

        if doctor_data.email and doctor_data.email != doctor.email:
            other = self.directory.find_by_email(doctor_data.email)
            if other is not None and other.id != doctor.id:
                raise ConflictError("Doctor email already registered", email=doctor_data.email)
            doctor.email = doctor_data.email

        if doctor_data.name is not None:
            doctor.name = doctor_data.name.strip()
        if doctor_data.specialty is not None:
            doctor.specialty = doctor_data.specialty.strip()
        if doctor_data.phone is not None:
            doctor.phone = doctor_data.phone
        if doctor_data.password is not None:
            doctor.password_hash = get_password_hash(doctor_data.password)

        self._commit("update_doctor", doctor_id=doctor_id)
        self.db.refresh(doctor)
        return doctor

    def delete_doctor(self, doctor_id: int) -> None:
        """Remove a doctor together with all of their appointments."""
        doctor = self.get_doctor(doctor_id)
        appointments = AppointmentStore(self.db)

        try:
            for appointment in appointments.find_for_doctor(doctor_id):
                appointments.delete(appointment)
            self.db.delete(doctor)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Store failure during delete_doctor")
            raise StoreFailure("The doctor directory is unavailable, please retry", doctor_id=doctor_id) from exc

        self._commit("delete_doctor", doctor_id=doctor_id)
        logger.info(f"Deleted doctor {doctor_id} and their appointments")

    def availability(self, doctor_id: int, day: date) -> AvailabilityResult:
        return AvailabilityCalculator(self.db).availability(doctor_id, day)

    def filter_doctors(self, criteria: DoctorFilterCriteria) -> List[Doctor]:
        return DoctorFilterIndex(self.db).filter(criteria)

    def appointments_on(
        self,
        doctor_id: int,
        day: date,
        patient_name: Optional[str] = None,
    ) -> List[Appointment]:
        """The doctor's appointments on ``day``, optionally narrowed by patient name."""
        self.get_doctor(doctor_id)
        start = datetime.combine(day, datetime.min.time())

        return AppointmentStore(self.db).find_for_doctor_on_day(
            doctor_id, start, start + timedelta(days=1), patient_name
        )

    def _commit(self, operation: str, **context) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError("Doctor record conflicts with an existing one", **context) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception(f"Store failure during {operation}")
            raise StoreFailure("The doctor directory is unavailable, please retry", **context) from exc
