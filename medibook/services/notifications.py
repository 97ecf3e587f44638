"""Best-effort appointment emails.

A notification is requested with :meth:`NotificationDispatcher.trigger`, which
schedules delivery on the running event loop and returns at once. Delivery
problems are logged and never reach the code that booked the appointment.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import resend
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medibook.core import config
from medibook.database import SessionLocal
from medibook.models.appointment import Appointment
from medibook.models.doctor import Doctor
from medibook.models.user import User
from medibook.services.errors import NotificationFailure

logger = logging.getLogger(__name__)

KIND_CONFIRMATION = 'confirmation'
KIND_CANCELLATION = 'cancellation'
KIND_REMINDER = 'reminder'
NOTIFICATION_KINDS = (KIND_CONFIRMATION, KIND_CANCELLATION, KIND_REMINDER)

_EMAIL_WRAPPER = '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">{body}</div>'
_DETAILS_BLOCK = (
    '<div style="background: {background}; padding: 20px; border-radius: 8px; margin: 20px 0;">'
    '<p><strong>Doctor:</strong> {doctor_name}</p>'
    '<p><strong>Department:</strong> {department}</p>'
    '<p><strong>{date_label}:</strong> {date_time}</p>'
    '</div>'
)


@dataclass(frozen=True)
class EmailData:
    patient_email: str
    patient_name: str
    doctor_name: str
    department: str
    date_time: datetime


@dataclass(frozen=True)
class EmailContent:
    subject: str
    html: str


def format_appointment_datetime(moment: datetime) -> str:
    hour = moment.hour % 12 or 12
    suffix = 'AM' if moment.hour < 12 else 'PM'
    return f'{moment:%A, %B} {moment.day}, {moment.year} at {hour}:{moment.minute:02d} {suffix}'


def build_email_content(kind: str, data: EmailData) -> EmailContent:
    if kind not in NOTIFICATION_KINDS:
        raise ValueError(f'Unknown notification kind: {kind}')

    if kind == KIND_CANCELLATION:
        subject = 'Appointment Cancelled - MediBook'
        heading = '<h1 style="color: #ef4444;">Appointment Cancelled</h1>'
        lead = 'Your appointment has been cancelled as requested.'
        closing = "If you'd like to reschedule, please visit our booking page."
        background = '#fef2f2'
        date_label = 'Original Date &amp; Time'
    elif kind == KIND_REMINDER:
        subject = 'Appointment Reminder - MediBook'
        heading = '<h1 style="color: #0ea5e9;">Appointment Reminder</h1>'
        lead = 'This is a friendly reminder about your upcoming appointment.'
        closing = 'Please arrive 15 minutes before your scheduled time.'
        background = '#f0f9ff'
        date_label = 'Date &amp; Time'
    else:
        subject = 'Appointment Confirmed - MediBook'
        heading = '<h1 style="color: #0ea5e9;">Appointment Confirmed!</h1>'
        lead = 'Your appointment has been successfully scheduled.'
        closing = 'Please arrive 15 minutes before your scheduled time.'
        background = '#f0f9ff'
        date_label = 'Date &amp; Time'

    details = _DETAILS_BLOCK.format(
        background=background,
        doctor_name=data.doctor_name,
        department=data.department,
        date_label=date_label,
        date_time=format_appointment_datetime(data.date_time),
    )
    body = (
        f'{heading}<p>Dear {data.patient_name},</p><p>{lead}</p>{details}'
        f'<p>{closing}</p><p>Best regards,<br>MediBook Team</p>'
    )
    return EmailContent(subject=subject, html=_EMAIL_WRAPPER.format(body=body))


class NotificationDispatcher:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        api_key: str | None = None,
        from_address: str | None = None,
    ):
        self.session_factory = session_factory
        self.api_key = config.RESEND_API_KEY if api_key is None else api_key
        self.from_address = from_address or config.EMAIL_FROM_ADDRESS
        self._pending: set[asyncio.Task] = set()

    def trigger(self, kind: str, appointment_id: int) -> asyncio.Task | None:
        """Schedule delivery without waiting for it."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning('No running event loop; %s email for appointment %s not sent', kind, appointment_id)
            return None

        task = loop.create_task(
            self.deliver(kind, appointment_id),
            name=f'notify-{kind}-{appointment_id}',
        )
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning('Notification task %s was cancelled', task.get_name())
            return

        error = task.exception()
        if error is not None:
            logger.error('Notification task %s failed: %s', task.get_name(), error)

    async def deliver(self, kind: str, appointment_id: int) -> dict:
        if kind not in NOTIFICATION_KINDS:
            raise NotificationFailure(f'Invalid email type: {kind}')

        data = await asyncio.to_thread(self._load_email_data, appointment_id)
        content = build_email_content(kind, data)

        if not self.api_key:
            logger.info('Email notification skipped (no API key configured): %s for appointment %s', kind, appointment_id)
            return {'success': True, 'logged': True}

        if not data.patient_email:
            raise NotificationFailure(f'No email address for appointment {appointment_id}')

        params = {
            'from': self.from_address,
            'to': [data.patient_email],
            'subject': content.subject,
            'html': content.html,
        }
        try:
            resend.api_key = self.api_key
            response = await asyncio.to_thread(resend.Emails.send, params)
        except Exception as exc:
            raise NotificationFailure(f'Failed to send email: {exc}') from exc

        logger.info('Email sent successfully for appointment %s', appointment_id)
        return {'success': True, 'id': response.get('id') if isinstance(response, dict) else None}

    def _load_email_data(self, appointment_id: int) -> EmailData:
        db = self.session_factory()
        try:
            appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
            if appointment is None:
                raise NotificationFailure(f'Appointment not found: {appointment_id}')

            patient = db.query(User).filter(User.id == appointment.patient_id).first()
            doctor = db.query(Doctor).filter(Doctor.id == appointment.doctor_id).first()
        except SQLAlchemyError as exc:
            raise NotificationFailure(f'Could not load appointment {appointment_id}') from exc
        finally:
            db.close()

        patient_email = patient.email if patient and patient.email else ''
        return EmailData(
            patient_email=patient_email,
            patient_name=(patient.full_name if patient else None) or patient_email or 'Patient',
            doctor_name=(doctor.full_name if doctor else None) or 'Doctor',
            department=appointment.department or '',
            date_time=appointment.date_time,
        )


dispatcher = NotificationDispatcher()


def get_notifier() -> NotificationDispatcher:
    return dispatcher
