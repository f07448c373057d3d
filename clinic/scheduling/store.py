"""
Persistence adapters used by the scheduling engine.

The engine never queries the ORM directly; it goes through these
objects so that every read and write shares the caller's session and
transaction.
"""
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..models.appointment import Appointment, AppointmentStatus, ACTIVE_STATUSES
from ..models.doctor import Doctor
from ..models.patient import Patient
from ..models.prescription import Prescription


class AppointmentStore:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, appointment_id: int) -> Optional[Appointment]:
        return self.db.get(Appointment, appointment_id)

    def find_by_doctor_and_range(
        self,
        doctor_id: int,
        start: datetime,
        end: datetime,
        statuses: Iterable[AppointmentStatus] = ACTIVE_STATUSES,
        exclude_id: Optional[int] = None,
    ) -> List[Appointment]:
        """Appointments of ``doctor_id`` starting in ``[start, end)``."""
        query = self.db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_time >= start,
            Appointment.appointment_time < end,
            Appointment.status.in_(list(statuses)),
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)

        return query.order_by(Appointment.appointment_time.asc()).all()

    def find_for_doctor_on_day(
        self,
        doctor_id: int,
        start: datetime,
        end: datetime,
        patient_name: Optional[str] = None,
    ) -> List[Appointment]:
        query = self.db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_time >= start,
            Appointment.appointment_time < end,
        )
        if patient_name:
            query = query.join(Patient, Appointment.patient_id == Patient.id).filter(
                func.lower(Patient.name).contains(patient_name.strip().lower(), autoescape=True)
            )

        return query.order_by(Appointment.appointment_time.asc()).all()

    def find_for_patient(
        self,
        patient_id: int,
        status: Optional[AppointmentStatus] = None,
        doctor_name: Optional[str] = None,
    ) -> List[Appointment]:
        query = self.db.query(Appointment).filter(Appointment.patient_id == patient_id)
        if status is not None:
            query = query.filter(Appointment.status == status)
        if doctor_name:
            query = query.join(Doctor, Appointment.doctor_id == Doctor.id).filter(
                func.lower(Doctor.name).contains(doctor_name.strip().lower(), autoescape=True)
            )

        return query.order_by(Appointment.appointment_time.asc()).all()

    def find_for_doctor(self, doctor_id: int) -> List[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id
        ).order_by(Appointment.appointment_time.asc()).all()

    def save(self, appointment: Appointment) -> Appointment:
        self.db.add(appointment)
        self.db.flush()
        return appointment

    def delete(self, appointment: Appointment) -> None:
        self.db.delete(appointment)
        self.db.flush()


class DoctorDirectory:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, doctor_id: int, for_update: bool = False) -> Optional[Doctor]:
        query = self.db.query(Doctor).filter(Doctor.id == doctor_id)
        if for_update:
            # Serializes bookings for one doctor across processes on PostgreSQL
            query = query.with_for_update()
        return query.first()

    def find_by_email(self, email: str) -> Optional[Doctor]:
        return self.db.query(Doctor).filter(
            func.lower(Doctor.email) == email.strip().lower()
        ).first()

    def find_by_name_substring(self, name: str) -> List[Doctor]:
        return self.db.query(Doctor).filter(
            func.lower(Doctor.name).contains(name.strip().lower(), autoescape=True)
        ).order_by(Doctor.id.asc()).all()

    def find_by_specialty(self, specialty: str) -> List[Doctor]:
        return self.db.query(Doctor).filter(
            func.lower(Doctor.specialty) == specialty.strip().lower()
        ).order_by(Doctor.id.asc()).all()

    def find_matching(self, name: Optional[str] = None, specialty: Optional[str] = None) -> List[Doctor]:
        query = self.db.query(Doctor)
        if name:
            query = query.filter(func.lower(Doctor.name).contains(name.strip().lower(), autoescape=True))
        if specialty:
            query = query.filter(func.lower(Doctor.specialty) == specialty.strip().lower())

        return query.order_by(Doctor.id.asc()).all()

    def all(self) -> List[Doctor]:
        return self.db.query(Doctor).order_by(Doctor.id.asc()).all()


class PatientDirectory:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, patient_id: int) -> Optional[Patient]:
        return self.db.get(Patient, patient_id)

    def find_by_email(self, email: str) -> Optional[Patient]:
        return self.db.query(Patient).filter(
            func.lower(Patient.email) == email.strip().lower()
        ).first()

    def find_by_email_or_phone(self, email: str, phone: str) -> Optional[Patient]:
        return self.db.query(Patient).filter(
            or_(
                func.lower(Patient.email) == email.strip().lower(),
                Patient.phone == phone.strip(),
            )
        ).first()


class PrescriptionStore:
    def __init__(self, db: Session):
        self.db = db

    def find_for_appointment(self, appointment_id: int) -> List[Prescription]:
        return self.db.query(Prescription).filter(
            Prescription.appointment_id == appointment_id
        ).order_by(Prescription.id.asc()).all()

    def save(self, prescription: Prescription) -> Prescription:
        self.db.add(prescription)
        self.db.flush()
        return prescription
