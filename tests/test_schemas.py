import pytest
from pydantic import ValidationError

from clinic.schemas.doctor import DoctorCreate, DoctorUpdate
from clinic.schemas.patient import PatientRegister


def doctor_payload(**overrides):
    payload = {
        "name": "Dr. John Smith",
        "email": "smith@clinic.org",
        "password": "secret1",
        "specialty": "Cardiology",
    }
    payload.update(overrides)
    return payload


@pytest.mark.parametrize("email", ["a@b..c", "no-at-sign", "two@@clinic.org", "smith@"])
def test_doctor_email_must_be_a_real_address(email):
    with pytest.raises(ValidationError):
        DoctorCreate(**doctor_payload(email=email))


def test_doctor_email_is_trimmed_and_lower_cased():
    assert DoctorCreate(**doctor_payload(email="  Smith@Clinic.ORG ")).email == "smith@clinic.org"


def test_update_email_is_optional_but_validated():
    assert DoctorUpdate().email is None

    with pytest.raises(ValidationError):
        DoctorUpdate(email="a@b..c")


def test_patient_email_is_validated():
    with pytest.raises(ValidationError):
        PatientRegister(name="Jane Doe", email="jane@b..c", password="secret12", phone="5550001111")


def test_phone_must_have_ten_digits():
    with pytest.raises(ValidationError):
        PatientRegister(name="Jane Doe", email="jane@example.com", password="secret12", phone="555-0001")
