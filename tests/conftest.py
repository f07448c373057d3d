import os

# Set testing environment before the application reads its settings
os.environ["TESTING"] = "1"
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///./test.db")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from clinic.main import app  # noqa: E402
from clinic.core.database import Base, SessionLocal, engine, redis_client  # noqa: E402
from clinic.core.security import Principal, UserRole, get_password_hash, token_authority  # noqa: E402
from clinic.models.admin import Admin  # noqa: E402
from clinic.models.doctor import Doctor  # noqa: E402
from clinic.models.patient import Patient  # noqa: E402

# Hashing is slow; every fixture account shares one password
TEST_PASSWORD = "Secret123"
TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    redis_client.flushall()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(test_db):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(test_db):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client


@pytest.fixture
def make_doctor(db):
    counter = {"n": 0}

    def _make(name="Dr. John Smith", specialty="Cardiology", email=None, phone=None):
        counter["n"] += 1
        doctor = Doctor(
            name=name,
            specialty=specialty,
            email=email or f"doctor{counter['n']}@clinic.org",
            phone=phone,
            password_hash=TEST_PASSWORD_HASH,
        )
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        return doctor

    return _make


@pytest.fixture
def make_patient(db):
    counter = {"n": 0}

    def _make(name="Jane Doe", email=None, phone=None):
        counter["n"] += 1
        patient = Patient(
            name=name,
            email=email or f"patient{counter['n']}@clinic.org",
            phone=phone or f"555000{counter['n']:04d}",
            password_hash=TEST_PASSWORD_HASH,
        )
        db.add(patient)
        db.commit()
        db.refresh(patient)
        return patient

    return _make


@pytest.fixture
def admin(db):
    admin = Admin(username="admin", password_hash=TEST_PASSWORD_HASH)
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


def auth_headers(user_id: int, role: UserRole, email: str = None) -> dict:
    token = token_authority.issue_token(Principal(id=user_id, email=email, role=role))
    return {"Authorization": f"Bearer {token.access_token}"}
