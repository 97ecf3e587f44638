"""Row-level persistence used by the scheduling services.

Methods flush but leave commit and rollback to the caller, so a service can
turn any ``SQLAlchemyError`` into its own failure type.
"""

from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from medibook.models.appointment import STATUS_SCHEDULED, Appointment
from medibook.models.doctor import Doctor
from medibook.scheduling.availability import AvailabilityRule, rules_from_storage

UPDATABLE_APPOINTMENT_FIELDS = frozenset({'date_time', 'status', 'notes'})


class SchedulingStore:
    def __init__(self, db: Session):
        self.db = db

    def get_doctor(self, doctor_id: int) -> Doctor | None:
        return self.db.query(Doctor).filter(Doctor.id == doctor_id).first()

    def get_doctor_for_user(self, user_id: int) -> Doctor | None:
        return self.db.query(Doctor).filter(Doctor.user_id == user_id).first()

    def list_approved_doctors(self, department: str | None = None) -> list[Doctor]:
        query = self.db.query(Doctor).filter(Doctor.is_approved.is_(True))
        if department:
            query = query.filter(Doctor.department.ilike(department.strip()))
        return query.order_by(Doctor.full_name.asc()).all()

    def get_availability(self, doctor_id: int) -> list[AvailabilityRule]:
        doctor = self.get_doctor(doctor_id)
        if doctor is None:
            return []
        return rules_from_storage(doctor.availability_slots)

    def save_availability(self, doctor_id: int, rules: list[AvailabilityRule]) -> bool:
        """Overwrite the doctor's whole rule list; returns False for an unknown doctor."""
        doctor = self.get_doctor(doctor_id)
        if doctor is None:
            return False

        doctor.availability_slots = [rule.to_dict() for rule in rules]
        self.db.flush()
        return True

    def list_scheduled_between(
        self,
        doctor_id: int,
        start: datetime,
        end: datetime,
        exclude_id: int | None = None,
    ) -> list[tuple[int, datetime]]:
        query = self.db.query(Appointment.id, Appointment.date_time).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.status == STATUS_SCHEDULED,
            Appointment.date_time >= start,
            Appointment.date_time < end,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return [(appointment_id, date_time) for appointment_id, date_time in query.all()]

    def get_appointment(
        self,
        appointment_id: int,
        patient_id: int | None = None,
        doctor_id: int | None = None,
    ) -> Appointment | None:
        query = self.db.query(Appointment).filter(Appointment.id == appointment_id)
        if patient_id is not None:
            query = query.filter(Appointment.patient_id == patient_id)
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        return query.first()

    def list_patient_appointments(self, patient_id: int) -> list[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.patient_id == patient_id,
        ).order_by(Appointment.date_time.desc()).all()

    def insert_appointment(
        self,
        patient_id: int,
        doctor_id: int,
        department: str,
        date_time: datetime,
    ) -> Appointment:
        appointment = Appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            department=department,
            date_time=date_time,
            status=STATUS_SCHEDULED,
        )
        self.db.add(appointment)
        self.db.flush()
        return appointment

    def update_appointment(
        self,
        appointment_id: int,
        fields: dict[str, Any],
        patient_id: int | None = None,
        doctor_id: int | None = None,
    ) -> Appointment | None:
        unknown_fields = set(fields) - UPDATABLE_APPOINTMENT_FIELDS
        if unknown_fields:
            raise ValueError(f'Cannot update appointment fields: {sorted(unknown_fields)}')

        appointment = self.get_appointment(appointment_id, patient_id=patient_id, doctor_id=doctor_id)
        if appointment is None:
            return None

        for name, value in fields.items():
            setattr(appointment, name, value)
        self.db.flush()
        return appointment
