import gc
import threading
from datetime import date, datetime

import pytest
from sqlalchemy.exc import OperationalError

from clinic.core.database import SessionLocal
from clinic.core.errors import (
    ConflictError, DoctorNotFoundError, ErrorKind, ForbiddenError,
    InvalidRequestError, NotFoundError, SchedulingError, StoreFailure
)
from clinic.models.appointment import ACTIVE_STATUSES, Appointment, AppointmentStatus
from clinic.scheduling.availability import AvailabilityCalculator
from clinic.scheduling import booking
from clinic.scheduling.booking import AppointmentOrchestrator, doctor_lock
from clinic.scheduling.store import AppointmentStore

TEN = datetime(2025, 1, 10, 10, 0)


@pytest.fixture
def doctor(make_doctor):
    return make_doctor()


@pytest.fixture
def patient(make_patient):
    return make_patient()


class TestBook:

    def test_book_creates_scheduled_appointment(self, db, doctor, patient):
        appointment = AppointmentOrchestrator(db).book(doctor.id, patient.id, TEN, reason="Checkup")

        assert appointment.id is not None
        assert appointment.status == AppointmentStatus.SCHEDULED
        assert appointment.appointment_time == TEN
        assert appointment.reason == "Checkup"

    def test_overlap_conflicts_and_next_hour_is_free(self, db, doctor, make_patient, patient):
        orchestrator = AppointmentOrchestrator(db)
        orchestrator.book(doctor.id, patient.id, TEN)
        other = make_patient(name="Paul Green")

        with pytest.raises(ConflictError):
            orchestrator.book(doctor.id, other.id, datetime(2025, 1, 10, 10, 30))

        created = orchestrator.book(doctor.id, other.id, datetime(2025, 1, 10, 11, 0))
        assert created.status == AppointmentStatus.SCHEDULED

    def test_back_to_back_bookings_both_succeed(self, db, doctor, patient):
        orchestrator = AppointmentOrchestrator(db)

        orchestrator.book(doctor.id, patient.id, datetime(2025, 1, 10, 13, 0))
        orchestrator.book(doctor.id, patient.id, datetime(2025, 1, 10, 14, 0))
        orchestrator.book(doctor.id, patient.id, datetime(2025, 1, 10, 12, 0))

        assert db.query(Appointment).count() == 3

    def test_unknown_doctor(self, db, patient):
        with pytest.raises(DoctorNotFoundError) as exc_info:
            AppointmentOrchestrator(db).book(404, patient.id, TEN)

        assert exc_info.value.kind is ErrorKind.DOCTOR_NOT_FOUND

    def test_unknown_patient(self, db, doctor):
        with pytest.raises(NotFoundError):
            AppointmentOrchestrator(db).book(doctor.id, 404, TEN)

    @pytest.mark.parametrize("start", [
        datetime(2025, 1, 10, 8, 59),
        datetime(2025, 1, 10, 17, 1),
        datetime(2025, 1, 10, 22, 0),
    ])
    def test_outside_working_window(self, db, doctor, patient, start):
        with pytest.raises(InvalidRequestError):
            AppointmentOrchestrator(db).book(doctor.id, patient.id, start)

    def test_seconds_are_normalized(self, db, doctor, patient):
        appointment = AppointmentOrchestrator(db).book(
            doctor.id, patient.id, datetime(2025, 1, 10, 10, 0, 37)
        )

        assert appointment.appointment_time == TEN

    def test_rebooking_a_cancelled_slot(self, db, doctor, patient):
        orchestrator = AppointmentOrchestrator(db)
        first = orchestrator.book(doctor.id, patient.id, TEN)
        orchestrator.cancel(first.id, patient.id)

        second = orchestrator.book(doctor.id, patient.id, TEN)

        assert second.id != first.id

    def test_store_failure_leaves_no_rows(self, db, doctor, patient, monkeypatch):
        def broken_save(self, appointment):
            raise OperationalError("INSERT INTO appointments", {}, Exception("disk I/O error"))

        monkeypatch.setattr(AppointmentStore, "save", broken_save)

        with pytest.raises(StoreFailure) as exc_info:
            AppointmentOrchestrator(db).book(doctor.id, patient.id, TEN)

        assert exc_info.value.status_code == 503
        assert db.query(Appointment).count() == 0


class TestConcurrentBooking:

    def test_identical_concurrent_requests_yield_one_booking(self, db, doctor, make_patient):
        patients = [make_patient(name=f"Patient {i}") for i in range(2)]
        barrier = threading.Barrier(len(patients))
        outcomes = []
        outcomes_lock = threading.Lock()

        def attempt(patient_id):
            session = SessionLocal()
            try:
                barrier.wait()
                AppointmentOrchestrator(session).book(doctor.id, patient_id, TEN)
                result = "created"
            except SchedulingError as exc:
                result = exc.kind.value
            finally:
                session.close()
            with outcomes_lock:
                outcomes.append(result)

        threads = [threading.Thread(target=attempt, args=(p.id,)) for p in patients]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert sorted(outcomes) == ["conflict", "created"]
        assert db.query(Appointment).filter(Appointment.doctor_id == doctor.id).count() == 1

    def test_overlapping_concurrent_requests_yield_one_booking(self, db, doctor, make_patient):
        starts = [datetime(2025, 1, 10, 10, 0), datetime(2025, 1, 10, 10, 20), datetime(2025, 1, 10, 10, 40)]
        patients = [make_patient(name=f"Patient {i}") for i in range(len(starts))]
        barrier = threading.Barrier(len(starts))
        outcomes = []
        outcomes_lock = threading.Lock()

        def attempt(patient_id, start):
            session = SessionLocal()
            try:
                barrier.wait()
                AppointmentOrchestrator(session).book(doctor.id, patient_id, start)
                result = "created"
            except SchedulingError as exc:
                result = exc.kind.value
            finally:
                session.close()
            with outcomes_lock:
                outcomes.append(result)

        threads = [
            threading.Thread(target=attempt, args=(p.id, start))
            for p, start in zip(patients, starts)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert outcomes.count("created") == 1
        assert outcomes.count("conflict") == 2


class TestUpdate:

    def test_reschedule_to_free_time(self, db, doctor, patient):
        orchestrator = AppointmentOrchestrator(db)
        appointment = orchestrator.book(doctor.id, patient.id, TEN)

        updated = orchestrator.update(appointment.id, datetime(2025, 1, 10, 15, 0), patient.id)

        assert updated.appointment_time == datetime(2025, 1, 10, 15, 0)
        assert updated.status == AppointmentStatus.SCHEDULED

    def test_small_shift_does_not_conflict_with_itself(self, db, doctor, patient):
        orchestrator = AppointmentOrchestrator(db)
        appointment = orchestrator.book(doctor.id, patient.id, TEN)

        updated = orchestrator.update(appointment.id, datetime(2025, 1, 10, 10, 30), patient.id)

        assert updated.appointment_time == datetime(2025, 1, 10, 10, 30)

    def test_reschedule_onto_other_appointment_conflicts(self, db, doctor, patient):
        orchestrator = AppointmentOrchestrator(db)
        first = orchestrator.book(doctor.id, patient.id, TEN)
        orchestrator.book(doctor.id, patient.id, datetime(2025, 1, 10, 12, 0))

        with pytest.raises(ConflictError):
            orchestrator.update(first.id, datetime(2025, 1, 10, 11, 30), patient.id)

        db.refresh(first)
        assert first.appointment_time == TEN

    def test_missing_appointment(self, db, patient):
        with pytest.raises(NotFoundError):
            AppointmentOrchestrator(db).update(999, TEN, patient.id)

    def test_other_patient_is_forbidden(self, db, doctor, patient, make_patient):
        orchestrator = AppointmentOrchestrator(db)
        appointment = orchestrator.book(doctor.id, patient.id, TEN)
        intruder = make_patient(name="Mallory")

        with pytest.raises(ForbiddenError):
            orchestrator.update(appointment.id, datetime(2025, 1, 10, 15, 0), intruder.id)

    def test_cancelled_appointment_cannot_be_rescheduled(self, db, doctor, patient):
        orchestrator = AppointmentOrchestrator(db)
        appointment = orchestrator.book(doctor.id, patient.id, TEN)
        orchestrator.cancel(appointment.id, patient.id)

        with pytest.raises(ConflictError):
            orchestrator.update(appointment.id, datetime(2025, 1, 10, 15, 0), patient.id)


class TestCancel:

    def test_cancel_frees_the_slot(self, db, doctor, patient):
        orchestrator = AppointmentOrchestrator(db)
        appointment = orchestrator.book(doctor.id, patient.id, TEN)

        cancelled = orchestrator.cancel(appointment.id, patient.id)

        assert cancelled.status == AppointmentStatus.CANCELLED
        result = AvailabilityCalculator(db).availability(doctor.id, date(2025, 1, 10))
        assert result.booked_slots == []

    def test_cancelling_twice_is_not_a_silent_success(self, db, doctor, patient):
        orchestrator = AppointmentOrchestrator(db)
        appointment = orchestrator.book(doctor.id, patient.id, TEN)
        orchestrator.cancel(appointment.id, patient.id)

        with pytest.raises(NotFoundError):
            orchestrator.cancel(appointment.id, patient.id)

    def test_cancel_someone_elses_appointment(self, db, doctor, patient, make_patient):
        orchestrator = AppointmentOrchestrator(db)
        appointment = orchestrator.book(doctor.id, patient.id, TEN)
        intruder = make_patient(name="Mallory")

        with pytest.raises(ForbiddenError):
            orchestrator.cancel(appointment.id, intruder.id)

        db.refresh(appointment)
        assert appointment.status == AppointmentStatus.SCHEDULED

    def test_cancel_missing_appointment(self, db, patient):
        with pytest.raises(NotFoundError):
            AppointmentOrchestrator(db).cancel(12345, patient.id)

    def test_completed_appointment_can_be_cancelled(self, db, doctor, patient):
        orchestrator = AppointmentOrchestrator(db)
        appointment = orchestrator.book(doctor.id, patient.id, TEN)
        orchestrator.complete(appointment.id, doctor.id)

        assert orchestrator.cancel(appointment.id, patient.id).status == AppointmentStatus.CANCELLED


class TestComplete:

    def test_doctor_completes_own_appointment(self, db, doctor, patient):
        orchestrator = AppointmentOrchestrator(db)
        appointment = orchestrator.book(doctor.id, patient.id, TEN)

        assert orchestrator.complete(appointment.id, doctor.id).status == AppointmentStatus.COMPLETED

    def test_other_doctor_is_forbidden(self, db, doctor, patient, make_doctor):
        orchestrator = AppointmentOrchestrator(db)
        appointment = orchestrator.book(doctor.id, patient.id, TEN)
        other = make_doctor(name="Dr. Alice Brown")

        with pytest.raises(ForbiddenError):
            orchestrator.complete(appointment.id, other.id)

    def test_completing_twice_conflicts(self, db, doctor, patient):
        orchestrator = AppointmentOrchestrator(db)
        appointment = orchestrator.book(doctor.id, patient.id, TEN)
        orchestrator.complete(appointment.id, doctor.id)

        with pytest.raises(ConflictError):
            orchestrator.complete(appointment.id, doctor.id)

    def test_complete_rereads_status_changed_by_another_session(self, db, doctor, patient, make_patient):
        orchestrator = AppointmentOrchestrator(db)
        appointment = orchestrator.book(doctor.id, patient.id, TEN)
        doctor_session = SessionLocal()
        try:
            stale = doctor_session.get(Appointment, appointment.id)
            assert stale.status == AppointmentStatus.SCHEDULED

            orchestrator.cancel(appointment.id, patient.id)
            orchestrator.book(doctor.id, make_patient(name="Paul Green").id, TEN)

            with pytest.raises(ConflictError):
                AppointmentOrchestrator(doctor_session).complete(appointment.id, doctor.id)
        finally:
            doctor_session.close()

        db.expire_all()
        assert db.get(Appointment, appointment.id).status == AppointmentStatus.CANCELLED
        active_at_ten = db.query(Appointment).filter(
            Appointment.doctor_id == doctor.id,
            Appointment.appointment_time == TEN,
            Appointment.status.in_(ACTIVE_STATUSES),
        ).count()
        assert active_at_ten == 1


class TestDoctorLocks:

    def test_same_doctor_shares_one_lock_while_held(self):
        lock = doctor_lock(41)

        assert doctor_lock(41) is lock
        assert doctor_lock(42) is not lock

    def test_idle_locks_are_released(self, db, doctor, patient):
        AppointmentOrchestrator(db).book(doctor.id, patient.id, TEN)
        gc.collect()

        assert doctor.id not in booking._doctor_locks


def test_reload_failure_is_reported_as_store_failure(db, doctor, patient, monkeypatch):
    def broken_refresh(instance, *args, **kwargs):
        raise OperationalError("SELECT appointments", {}, Exception("connection reset"))

    orchestrator = AppointmentOrchestrator(db)
    monkeypatch.setattr(db, "refresh", broken_refresh)

    with pytest.raises(StoreFailure) as exc_info:
        orchestrator.book(doctor.id, patient.id, TEN)

    assert exc_info.value.context["operation"] == "book"
