# tests/conftest.py
import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["CLINIC_TIMEZONE"] = "UTC"

import pytest
from httpx import ASGITransport, AsyncClient

from eshaafi import models
from eshaafi.database import Base, SessionLocal, engine, get_db
from eshaafi.main import app
from eshaafi.routers.bookings import get_video_provisioner
from tests.helpers import FakeProvisioner


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def provisioner():
    return FakeProvisioner()


@pytest.fixture
async def async_client(db, provisioner):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_video_provisioner] = lambda: provisioner
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(role=models.UserRole.PATIENT, name=None):
        counter["n"] += 1
        user = models.User(
            name=name or f"{role.value.title()} {counter['n']}",
            email=f"{role.value.lower()}{counter['n']}@example.com",
            role=role,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_doctor(db, make_user):
    def _make_doctor(clinic=None, specialty="General Practice"):
        user = make_user(models.UserRole.DOCTOR)
        doctor = models.Doctor(user_id=user.id, specialty=specialty, clinic_id=clinic.id if clinic else None)
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        return doctor

    return _make_doctor


@pytest.fixture
def patient(make_user):
    return make_user(models.UserRole.PATIENT)


@pytest.fixture
def doctor(make_doctor):
    return make_doctor()
