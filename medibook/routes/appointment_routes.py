from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from medibook.auth.dependencies import get_current_identity, get_optional_identity
from medibook.auth.identity import Identity
from medibook.models.appointment import STATUS_SCHEDULED, Appointment
from medibook.routes.availability_routes import SlotResponse
from medibook.routes.common import ensure_database_ready, get_db, to_http_exception
from medibook.services.booking import BookingService
from medibook.services.errors import SchedulingError
from medibook.services.notifications import NotificationDispatcher, get_notifier
from medibook.services.reschedule import RescheduleService
from medibook.services.store import SchedulingStore

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_NOTES_LENGTH = 600


class CreateAppointmentRequest(BaseModel):
    doctor_id: int
    department: str
    date_time: datetime

    @field_validator('department')
    @classmethod
    def validate_department(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Department is required.')
        return normalized


class RescheduleRequest(BaseModel):
    date_time: datetime


class UpdateStatusRequest(BaseModel):
    status: str
    notes: str | None = None

    @field_validator('status')
    @classmethod
    def normalize_status(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    department: str
    date_time: datetime
    status: str
    notes: str | None = None

    class Config:
        from_attributes = True


class MyAppointmentsResponse(BaseModel):
    upcoming: list[AppointmentResponse]
    past: list[AppointmentResponse]


def split_upcoming(appointments: list[Appointment], now: datetime) -> tuple[list[Appointment], list[Appointment]]:
    upcoming = [
        appointment for appointment in appointments
        if appointment.date_time >= now and appointment.status == STATUS_SCHEDULED
    ]
    upcoming_ids = {appointment.id for appointment in upcoming}
    past = [appointment for appointment in appointments if appointment.id not in upcoming_ids]
    return upcoming, past


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    data: CreateAppointmentRequest,
    identity: Identity | None = Depends(get_optional_identity),
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = await BookingService(db, notifier).book(
            identity,
            doctor_id=data.doctor_id,
            department=data.department,
            date_time=data.date_time,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return appointment


@router.get('/mine', response_model=MyAppointmentsResponse)
def list_my_appointments(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointments = SchedulingStore(db).list_patient_appointments(identity.user_id)
    upcoming, past = split_upcoming(appointments, datetime.now())
    return MyAppointmentsResponse(
        upcoming=[AppointmentResponse.model_validate(appointment) for appointment in upcoming],
        past=[AppointmentResponse.model_validate(appointment) for appointment in past],
    )


@router.get('/{appointment_id}/reschedule-slots', response_model=list[SlotResponse])
def list_reschedule_slots(
    appointment_id: int,
    identity: Identity | None = Depends(get_optional_identity),
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        slots = RescheduleService(db, notifier).reschedule_slots(identity, appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [SlotResponse.model_validate(slot) for slot in slots]


@router.patch('/{appointment_id}/reschedule', response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: int,
    data: RescheduleRequest,
    identity: Identity | None = Depends(get_optional_identity),
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = await RescheduleService(db, notifier).reschedule(identity, appointment_id, data.date_time)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return appointment


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    identity: Identity | None = Depends(get_optional_identity),
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = await RescheduleService(db, notifier).cancel(identity, appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return appointment


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    identity: Identity | None = Depends(get_optional_identity),
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = RescheduleService(db, notifier).update_status(
            identity,
            appointment_id,
            data.status,
            notes=data.notes,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return appointment
