"""
Booking, rescheduling, cancellation and completion of appointments.

Appointment states::

    SCHEDULED --update--> SCHEDULED
    SCHEDULED --complete--> COMPLETED
    SCHEDULED | COMPLETED --cancel--> CANCELLED   (terminal)

Conflict validation and the write that depends on it run while holding the
doctor's lock and inside one transaction, so two requests for overlapping
times of the same doctor cannot both observe a free slot and both insert.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from threading import Lock
from typing import Optional
from weakref import WeakValueDictionary

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import (
    ConflictError, DoctorNotFoundError, ForbiddenError, InvalidRequestError,
    NotFoundError, SchedulingError, StoreFailure
)
from ..models.appointment import Appointment, AppointmentStatus
from .conflicts import ConflictValidator, SlotDecision
from .slots import generate_slots, normalize_start
from .store import AppointmentStore, DoctorDirectory, PatientDirectory

logger = logging.getLogger(__name__)

_registry_lock = Lock()
# Entries disappear once no request holds the lock of that doctor
_doctor_locks: "WeakValueDictionary[int, Lock]" = WeakValueDictionary()


def doctor_lock(doctor_id: int) -> Lock:
    """Process-wide mutex guarding one doctor's calendar."""
    with _registry_lock:
        lock = _doctor_locks.get(doctor_id)
        if lock is None:
            lock = _doctor_locks[doctor_id] = Lock()
        return lock


class AppointmentOrchestrator:
    def __init__(self, db: Session):
        self.db = db
        self.appointments = AppointmentStore(db)
        self.doctors = DoctorDirectory(db)
        self.patients = PatientDirectory(db)
        self.validator = ConflictValidator(db)

    @contextmanager
    def _store_errors(self, operation: str):
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception(f"Store failure during {operation}")
            raise StoreFailure(
                "The appointment store is unavailable, please retry",
                operation=operation,
            ) from exc

    @contextmanager
    def _transaction(self, operation: str):
        with self._store_errors(operation):
            try:
                yield
                self.db.commit()
            except SchedulingError:
                self.db.rollback()
                raise

    def _require_on_grid(self, start: datetime) -> datetime:
        start = normalize_start(start)
        if start not in generate_slots(start.date()):
            raise InvalidRequestError(
                "Requested time is outside the working window",
                requested_start=start,
            )
        return start

    def _lock_doctor(self, doctor_id: int):
        doctor = self.doctors.find_by_id(doctor_id, for_update=True)
        if doctor is None:
            raise DoctorNotFoundError(doctor_id)
        return doctor

    def book(
        self,
        doctor_id: int,
        patient_id: int,
        start: datetime,
        reason: Optional[str] = None,
    ) -> Appointment:
        """Create a scheduled appointment if the doctor is free at ``start``."""
        start = self._require_on_grid(start)

        with doctor_lock(doctor_id):
            with self._transaction("book"):
                self._lock_doctor(doctor_id)

                if self.patients.find_by_id(patient_id) is None:
                    raise NotFoundError("Patient not found", patient_id=patient_id)

                if self.validator.validate(doctor_id, start) is SlotDecision.CONFLICT:
                    raise ConflictError(
                        "Requested time is already booked",
                        doctor_id=doctor_id,
                        requested_start=start,
                    )

                appointment = self.appointments.save(Appointment(
                    doctor_id=doctor_id,
                    patient_id=patient_id,
                    appointment_time=start,
                    status=AppointmentStatus.SCHEDULED,
                    reason=reason,
                ))

        self._reload(appointment, "book")
        logger.info(
            f"Booked appointment {appointment.id} for doctor {doctor_id} "
            f"at {start.isoformat()}"
        )
        return appointment

    def update(
        self,
        appointment_id: int,
        new_start: datetime,
        requester_patient_id: Optional[int] = None,
    ) -> Appointment:
        """Move a scheduled appointment to ``new_start``.

        The new time is checked against every other appointment of the same
        doctor; the appointment being moved never conflicts with itself.
        """
        new_start = self._require_on_grid(new_start)
        appointment = self._find(appointment_id)

        with doctor_lock(appointment.doctor_id):
            with self._transaction("update"):
                self._lock_doctor(appointment.doctor_id)
                self.db.refresh(appointment)
                self._check_owner(appointment, requester_patient_id)

                if appointment.status != AppointmentStatus.SCHEDULED:
                    raise ConflictError(
                        "Only scheduled appointments can be rescheduled",
                        appointment_id=appointment_id,
                        status=AppointmentStatus(appointment.status).name.lower(),
                    )

                decision = self.validator.validate(
                    appointment.doctor_id,
                    new_start,
                    exclude_appointment_id=appointment.id,
                )
                if decision is SlotDecision.CONFLICT:
                    raise ConflictError(
                        "Requested time is already booked",
                        doctor_id=appointment.doctor_id,
                        requested_start=new_start,
                    )

                appointment.appointment_time = new_start
                self.appointments.save(appointment)

        self._reload(appointment, "update")
        logger.info(f"Rescheduled appointment {appointment.id} to {new_start.isoformat()}")
        return appointment

    def cancel(self, appointment_id: int, requester_patient_id: Optional[int] = None) -> Appointment:
        """Cancel an appointment owned by the requesting patient."""
        appointment = self._find(appointment_id)

        with doctor_lock(appointment.doctor_id):
            with self._transaction("cancel"):
                self.db.refresh(appointment)
                if appointment.status == AppointmentStatus.CANCELLED:
                    raise NotFoundError(
                        "Appointment not found",
                        appointment_id=appointment_id,
                    )
                self._check_owner(appointment, requester_patient_id)

                appointment.status = AppointmentStatus.CANCELLED
                self.appointments.save(appointment)

        self._reload(appointment, "cancel")
        logger.info(f"Cancelled appointment {appointment.id}")
        return appointment

    def complete(self, appointment_id: int, requester_doctor_id: Optional[int] = None) -> Appointment:
        """Mark a scheduled appointment as completed by its doctor."""
        appointment = self._find(appointment_id)

        with doctor_lock(appointment.doctor_id):
            with self._transaction("complete"):
                self._lock_doctor(appointment.doctor_id)
                self.db.refresh(appointment)
                if requester_doctor_id is not None and appointment.doctor_id != requester_doctor_id:
                    raise ForbiddenError(
                        "Appointment belongs to another doctor",
                        appointment_id=appointment_id,
                    )
                if appointment.status != AppointmentStatus.SCHEDULED:
                    raise ConflictError(
                        "Only scheduled appointments can be completed",
                        appointment_id=appointment_id,
                        status=AppointmentStatus(appointment.status).name.lower(),
                    )

                appointment.status = AppointmentStatus.COMPLETED
                self.appointments.save(appointment)

        self._reload(appointment, "complete")
        logger.info(f"Completed appointment {appointment.id}")
        return appointment

    def _reload(self, appointment: Appointment, operation: str) -> Appointment:
        with self._store_errors(operation):
            self.db.refresh(appointment)
        return appointment

    def _find(self, appointment_id: int) -> Appointment:
        with self._store_errors("load"):
            appointment = self.appointments.find_by_id(appointment_id)

        if appointment is None:
            raise NotFoundError("Appointment not found", appointment_id=appointment_id)
        return appointment

    @staticmethod
    def _check_owner(appointment: Appointment, requester_patient_id: Optional[int]) -> None:
        if requester_patient_id is not None and appointment.patient_id != requester_patient_id:
            raise ForbiddenError(
                "Appointment belongs to another patient",
                appointment_id=appointment.id,
            )
