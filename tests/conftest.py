import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('RESEND_API_KEY', '')

from medibook.auth.identity import ROLE_ADMIN, ROLE_DOCTOR, ROLE_PATIENT, Identity  # noqa: E402
from medibook.database import Base  # noqa: E402
from medibook.models.appointment import Appointment  # noqa: E402
from medibook.models.doctor import Doctor  # noqa: E402
from medibook.models.user import User  # noqa: E402


class RecordingNotifier:
    """Stands in for NotificationDispatcher and records every trigger."""

    def __init__(self):
        self.calls: list[tuple[str, int]] = []

    def trigger(self, kind: str, appointment_id: int):
        self.calls.append((kind, appointment_id))
        return None


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    tables = [User.__table__, Doctor.__table__, Appointment.__table__]
    Base.metadata.create_all(bind=engine, tables=tables)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine, tables=list(reversed(tables)))
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def patient(db):
    user = User(email='patient@example.com', full_name='Pat Patient', hashed_password='', role=ROLE_PATIENT)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def patient_identity(patient):
    return Identity.from_user(patient)


@pytest.fixture
def other_patient_identity(db):
    user = User(email='other@example.com', full_name='Olive Other', hashed_password='', role=ROLE_PATIENT)
    db.add(user)
    db.commit()
    db.refresh(user)
    return Identity.from_user(user)


@pytest.fixture
def admin_identity(db):
    user = User(email='admin@example.com', full_name='Ada Admin', hashed_password='', role=ROLE_ADMIN)
    db.add(user)
    db.commit()
    db.refresh(user)
    return Identity.from_user(user)


@pytest.fixture
def make_doctor(db):
    def _make_doctor(rules=None, email='doctor@example.com', department='Cardiology', is_approved=True):
        user = User(email=email, full_name='Dr. Dana Heart', hashed_password='', role=ROLE_DOCTOR)
        db.add(user)
        db.flush()
        doctor = Doctor(
            user_id=user.id,
            full_name='Dana Heart',
            specialty='Cardiologist',
            department=department,
            is_approved=is_approved,
            availability_slots=rules or [],
        )
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        return doctor

    return _make_doctor


@pytest.fixture
def doctor_identity(db):
    def _doctor_identity(doctor):
        return Identity.from_user(db.query(User).filter(User.id == doctor.user_id).one())

    return _doctor_identity


@pytest.fixture
def add_appointment(db):
    def _add_appointment(patient_id, doctor_id, date_time: datetime, status='scheduled'):
        appointment = Appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            department='cardiology',
            date_time=date_time,
            status=status,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _add_appointment
