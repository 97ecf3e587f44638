import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medibook.auth.identity import Identity
from medibook.models.appointment import Appointment
from medibook.scheduling.slots import Slot, collision_window, generate_slots, truncate_to_hour
from medibook.services.errors import AuthenticationRequired, BookingFailed, DoctorNotFound
from medibook.services.notifications import KIND_CONFIRMATION, NotificationDispatcher
from medibook.services.store import SchedulingStore

logger = logging.getLogger(__name__)


class BookingService:
    """Turns a selected slot into a scheduled appointment."""

    def __init__(self, db: Session, notifier: NotificationDispatcher):
        self.db = db
        self.store = SchedulingStore(db)
        self.notifier = notifier

    def available_slots(self, doctor_id: int, now: datetime | None = None) -> list[Slot]:
        now = now or datetime.now()
        rules = self.store.get_availability(doctor_id)
        if not rules:
            return []

        window_start, window_end = collision_window(now)
        booked = self.store.list_scheduled_between(doctor_id, window_start, window_end)
        return generate_slots(rules, [date_time for _, date_time in booked], now)

    async def book(
        self,
        identity: Identity | None,
        doctor_id: int,
        department: str,
        date_time: datetime,
    ) -> Appointment:
        # The slot was checked when it was listed; the unique index on
        # scheduled (doctor_id, date_time) rejects a concurrent duplicate.
        if identity is None:
            raise AuthenticationRequired()

        doctor = self.store.get_doctor(doctor_id)
        if doctor is None or not doctor.is_approved:
            raise DoctorNotFound()

        try:
            appointment = self.store.insert_appointment(
                patient_id=identity.user_id,
                doctor_id=doctor_id,
                department=department,
                date_time=truncate_to_hour(date_time),
            )
            self.db.commit()
            self.db.refresh(appointment)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Error creating appointment for doctor %s', doctor_id)
            raise BookingFailed() from exc

        self.notifier.trigger(KIND_CONFIRMATION, appointment.id)
        logger.info('Appointment %s booked with doctor %s', appointment.id, doctor_id)
        return appointment
