import asyncio
from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from medibook.models.appointment import Appointment
from medibook.routes.appointment_routes import (
    CreateAppointmentRequest,
    RescheduleRequest,
    UpdateStatusRequest,
    cancel_appointment,
    create_appointment,
    list_my_appointments,
    list_reschedule_slots,
    reschedule_appointment,
    split_upcoming,
    update_appointment_status,
)

WEDNESDAY_NINE = datetime(2026, 1, 7, 9, 0)
WEDNESDAY_TEN = datetime(2026, 1, 7, 10, 0)


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('medibook.routes.appointment_routes.ensure_database_ready', lambda: None)


def test_create_appointment_request_normalizes_department() -> None:
    request = CreateAppointmentRequest(doctor_id=1, department=' Cardiology ', date_time=WEDNESDAY_NINE)

    assert request.department == 'cardiology'


def test_create_appointment_request_rejects_blank_department() -> None:
    with pytest.raises(ValidationError):
        CreateAppointmentRequest(doctor_id=1, department='   ', date_time=WEDNESDAY_NINE)


def test_update_status_request_normalizes_and_limits_notes() -> None:
    request = UpdateStatusRequest(status=' Completed ', notes='  Recovered well.  ')

    assert request.status == 'completed'
    assert request.notes == 'Recovered well.'

    with pytest.raises(ValidationError):
        UpdateStatusRequest(status='completed', notes='x' * 601)


def test_create_appointment_without_sign_in_returns_401(db, notifier, make_doctor) -> None:
    doctor = make_doctor()
    data = CreateAppointmentRequest(doctor_id=doctor.id, department='cardiology', date_time=WEDNESDAY_NINE)

    with pytest.raises(HTTPException) as exception_info:
        asyncio.run(create_appointment(data=data, identity=None, db=db, notifier=notifier))

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Please sign in to book an appointment.'
    assert db.query(Appointment).count() == 0


def test_create_appointment_books_and_notifies(db, notifier, make_doctor, patient_identity) -> None:
    doctor = make_doctor()
    data = CreateAppointmentRequest(doctor_id=doctor.id, department='cardiology', date_time=WEDNESDAY_NINE)

    appointment = asyncio.run(create_appointment(data=data, identity=patient_identity, db=db, notifier=notifier))

    assert appointment.status == 'scheduled'
    assert notifier.calls == [('confirmation', appointment.id)]


def test_create_appointment_for_taken_hour_returns_409(
    db, notifier, make_doctor, patient, other_patient_identity, add_appointment
) -> None:
    doctor = make_doctor()
    add_appointment(patient.id, doctor.id, WEDNESDAY_NINE)
    data = CreateAppointmentRequest(doctor_id=doctor.id, department='cardiology', date_time=WEDNESDAY_NINE)

    with pytest.raises(HTTPException) as exception_info:
        asyncio.run(create_appointment(data=data, identity=other_patient_identity, db=db, notifier=notifier))

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Could not create appointment. Please try again.'


def test_create_appointment_with_unapproved_doctor_returns_404(
    db, notifier, make_doctor, patient_identity
) -> None:
    doctor = make_doctor(is_approved=False)
    data = CreateAppointmentRequest(doctor_id=doctor.id, department='cardiology', date_time=WEDNESDAY_NINE)

    with pytest.raises(HTTPException) as exception_info:
        asyncio.run(create_appointment(data=data, identity=patient_identity, db=db, notifier=notifier))

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Doctor not found.'
    assert db.query(Appointment).count() == 0


def test_cancel_of_cancelled_appointment_returns_400(
    db, notifier, make_doctor, patient, patient_identity, add_appointment
) -> None:
    doctor = make_doctor()
    appointment = add_appointment(patient.id, doctor.id, WEDNESDAY_NINE, status='cancelled')

    with pytest.raises(HTTPException) as exception_info:
        asyncio.run(
            cancel_appointment(appointment_id=appointment.id, identity=patient_identity, db=db, notifier=notifier)
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Only scheduled appointments can be cancelled.'
    assert notifier.calls == []


def test_reschedule_of_foreign_appointment_returns_404(
    db, notifier, make_doctor, patient, other_patient_identity, add_appointment
) -> None:
    doctor = make_doctor()
    appointment = add_appointment(patient.id, doctor.id, WEDNESDAY_NINE)

    with pytest.raises(HTTPException) as exception_info:
        asyncio.run(
            reschedule_appointment(
                appointment_id=appointment.id,
                data=RescheduleRequest(date_time=WEDNESDAY_TEN),
                identity=other_patient_identity,
                db=db,
                notifier=notifier,
            )
        )

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Appointment not found.'


def test_reschedule_into_taken_hour_returns_409(
    db, notifier, make_doctor, patient, patient_identity, other_patient_identity, add_appointment
) -> None:
    doctor = make_doctor()
    appointment = add_appointment(patient.id, doctor.id, WEDNESDAY_NINE)
    add_appointment(other_patient_identity.user_id, doctor.id, WEDNESDAY_TEN)

    with pytest.raises(HTTPException) as exception_info:
        asyncio.run(
            reschedule_appointment(
                appointment_id=appointment.id,
                data=RescheduleRequest(date_time=WEDNESDAY_TEN),
                identity=patient_identity,
                db=db,
                notifier=notifier,
            )
        )

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Failed to reschedule appointment.'
    assert notifier.calls == []


def test_reschedule_slots_require_sign_in(db, notifier) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_reschedule_slots(appointment_id=1, identity=None, db=db, notifier=notifier)

    assert exception_info.value.status_code == 401


def test_cancel_appointment_marks_cancelled(db, notifier, make_doctor, patient, patient_identity, add_appointment) -> None:
    doctor = make_doctor()
    appointment = add_appointment(patient.id, doctor.id, WEDNESDAY_NINE)

    cancelled = asyncio.run(
        cancel_appointment(appointment_id=appointment.id, identity=patient_identity, db=db, notifier=notifier)
    )

    assert cancelled.status == 'cancelled'
    assert notifier.calls == [('cancellation', appointment.id)]


def test_update_status_with_unknown_status_returns_400(
    db, notifier, make_doctor, doctor_identity, patient, add_appointment
) -> None:
    doctor = make_doctor()
    appointment = add_appointment(patient.id, doctor.id, WEDNESDAY_NINE)

    with pytest.raises(HTTPException) as exception_info:
        update_appointment_status(
            appointment_id=appointment.id,
            data=UpdateStatusRequest(status='no-show'),
            identity=doctor_identity(doctor),
            db=db,
            notifier=notifier,
        )

    assert exception_info.value.status_code == 400


def test_update_status_by_patient_returns_403(
    db, notifier, make_doctor, patient, patient_identity, add_appointment
) -> None:
    doctor = make_doctor()
    appointment = add_appointment(patient.id, doctor.id, WEDNESDAY_NINE)

    with pytest.raises(HTTPException) as exception_info:
        update_appointment_status(
            appointment_id=appointment.id,
            data=UpdateStatusRequest(status='completed'),
            identity=patient_identity,
            db=db,
            notifier=notifier,
        )

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Only doctors can update appointment status.'


def test_split_upcoming_separates_future_scheduled_appointments() -> None:
    now = datetime(2026, 1, 6, 12, 0)
    future = Appointment(id=1, date_time=now + timedelta(days=1), status='scheduled')
    future_cancelled = Appointment(id=2, date_time=now + timedelta(days=2), status='cancelled')
    past = Appointment(id=3, date_time=now - timedelta(days=1), status='scheduled')

    upcoming, history = split_upcoming([future, future_cancelled, past], now)

    assert upcoming == [future]
    assert history == [future_cancelled, past]


def test_list_my_appointments_only_returns_own(
    db, make_doctor, patient, patient_identity, other_patient_identity, add_appointment
) -> None:
    doctor = make_doctor()
    mine = add_appointment(patient.id, doctor.id, datetime.now() + timedelta(days=2))
    add_appointment(other_patient_identity.user_id, doctor.id, datetime.now() + timedelta(days=3))

    response = list_my_appointments(identity=patient_identity, db=db)

    assert [appointment.id for appointment in response.upcoming] == [mine.id]
    assert response.past == []
