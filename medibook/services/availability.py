import logging
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medibook.auth.identity import Identity
from medibook.models.doctor import Doctor
from medibook.scheduling.availability import AvailabilityRule, AvailabilitySchedule, validate_rules
from medibook.services.errors import (
    AuthenticationRequired,
    AvailabilitySaveFailed,
    DoctorNotFound,
    PermissionDenied,
)
from medibook.services.store import SchedulingStore

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Reads and replaces a doctor's weekly rules.

    Every write stores the complete list, so two editors saving one after the
    other keep only the second list.
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = SchedulingStore(db)

    def rules_for(self, doctor_id: int) -> list[AvailabilityRule]:
        if self.store.get_doctor(doctor_id) is None:
            raise DoctorNotFound()
        return self.store.get_availability(doctor_id)

    def _own_doctor(self, identity: Identity | None) -> Doctor:
        if identity is None:
            raise AuthenticationRequired('Please sign in to manage availability.')

        doctor = self.store.get_doctor_for_user(identity.user_id)
        if doctor is None:
            raise PermissionDenied('Only doctors can manage availability.')
        return doctor

    def my_schedule(self, identity: Identity | None) -> AvailabilitySchedule:
        doctor = self._own_doctor(identity)
        return AvailabilitySchedule.from_storage(doctor.availability_slots)

    def save(self, identity: Identity | None, rules: list[AvailabilityRule]) -> list[AvailabilityRule]:
        doctor = self._own_doctor(identity)
        validate_rules(rules)

        try:
            self.store.save_availability(doctor.id, rules)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Error saving availability for doctor %s', doctor.id)
            raise AvailabilitySaveFailed() from exc

        logger.info('Availability replaced for doctor %s (%d rules)', doctor.id, len(rules))
        return list(rules)

    def edit(
        self,
        identity: Identity | None,
        change: Callable[[AvailabilitySchedule], object],
    ) -> list[AvailabilityRule]:
        """Apply one schedule edit to the stored rules and save the result."""
        schedule = self.my_schedule(identity)
        change(schedule)
        return self.save(identity, schedule.rules)
