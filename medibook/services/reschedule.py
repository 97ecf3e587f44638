"""Changes to existing appointments: reschedule, cancel and doctor updates."""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medibook.auth.identity import Identity
from medibook.models.appointment import APPOINTMENT_STATUSES, STATUS_CANCELLED, STATUS_SCHEDULED, Appointment
from medibook.scheduling.slots import Slot, collision_window, generate_slots, truncate_to_hour
from medibook.services.errors import (
    AppointmentNotFound,
    AppointmentUpdateFailed,
    AuthenticationRequired,
    InvalidAppointmentStatus,
    PermissionDenied,
    RescheduleFailed,
)
from medibook.services.notifications import KIND_CANCELLATION, KIND_CONFIRMATION, NotificationDispatcher
from medibook.services.store import SchedulingStore

logger = logging.getLogger(__name__)


class RescheduleService:
    def __init__(self, db: Session, notifier: NotificationDispatcher):
        self.db = db
        self.store = SchedulingStore(db)
        self.notifier = notifier

    def _own_appointment(self, identity: Identity | None, appointment_id: int) -> Appointment:
        if identity is None:
            raise AuthenticationRequired()

        appointment = self.store.get_appointment(appointment_id, patient_id=identity.user_id)
        if appointment is None:
            raise AppointmentNotFound()
        return appointment

    def _own_scheduled_appointment(self, identity: Identity | None, appointment_id: int, action: str) -> Appointment:
        appointment = self._own_appointment(identity, appointment_id)
        if appointment.status != STATUS_SCHEDULED:
            raise InvalidAppointmentStatus(f'Only scheduled appointments can be {action}.')
        return appointment

    def reschedule_slots(
        self,
        identity: Identity | None,
        appointment_id: int,
        now: datetime | None = None,
    ) -> list[Slot]:
        """Slots for the appointment's doctor, ignoring the appointment itself.

        The appointment's current hour therefore shows as available.
        """
        appointment = self._own_appointment(identity, appointment_id)
        now = now or datetime.now()

        rules = self.store.get_availability(appointment.doctor_id)
        if not rules:
            return []

        window_start, window_end = collision_window(now)
        booked = self.store.list_scheduled_between(
            appointment.doctor_id,
            window_start,
            window_end,
            exclude_id=appointment.id,
        )
        return generate_slots(rules, [date_time for _, date_time in booked], now)

    async def reschedule(
        self,
        identity: Identity | None,
        appointment_id: int,
        new_date_time: datetime,
    ) -> Appointment:
        self._own_scheduled_appointment(identity, appointment_id, 'rescheduled')

        try:
            appointment = self.store.update_appointment(
                appointment_id,
                {'date_time': truncate_to_hour(new_date_time)},
                patient_id=identity.user_id,
            )
            if appointment is None:
                raise AppointmentNotFound()
            self.db.commit()
            self.db.refresh(appointment)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Error rescheduling appointment %s', appointment_id)
            raise RescheduleFailed() from exc

        self.notifier.trigger(KIND_CONFIRMATION, appointment.id)
        logger.info('Appointment %s rescheduled', appointment.id)
        return appointment

    async def cancel(self, identity: Identity | None, appointment_id: int) -> Appointment:
        self._own_scheduled_appointment(identity, appointment_id, 'cancelled')

        try:
            appointment = self.store.update_appointment(
                appointment_id,
                {'status': STATUS_CANCELLED},
                patient_id=identity.user_id,
            )
            if appointment is None:
                raise AppointmentNotFound()
            self.db.commit()
            self.db.refresh(appointment)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Error cancelling appointment %s', appointment_id)
            raise AppointmentUpdateFailed('Failed to cancel appointment.') from exc

        self.notifier.trigger(KIND_CANCELLATION, appointment.id)
        return appointment

    def update_status(
        self,
        identity: Identity | None,
        appointment_id: int,
        status: str,
        notes: str | None = None,
    ) -> Appointment:
        """Doctor-side status change; notes are only touched when given."""
        if identity is None:
            raise AuthenticationRequired()
        if status not in APPOINTMENT_STATUSES:
            raise InvalidAppointmentStatus(f'Invalid appointment status "{status}".')

        doctor = self.store.get_doctor_for_user(identity.user_id)
        if doctor is None:
            raise PermissionDenied('Only doctors can update appointment status.')

        fields: dict[str, object] = {'status': status}
        if notes is not None:
            fields['notes'] = notes

        try:
            appointment = self.store.update_appointment(appointment_id, fields, doctor_id=doctor.id)
            if appointment is None:
                raise AppointmentNotFound()
            self.db.commit()
            self.db.refresh(appointment)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Error updating appointment %s', appointment_id)
            raise AppointmentUpdateFailed('Failed to update appointment status.') from exc

        return appointment
