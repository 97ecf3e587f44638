from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from medibook.auth.dependencies import get_optional_identity
from medibook.auth.identity import Identity
from medibook.scheduling.availability import AvailabilityRule
from medibook.scheduling.slots import Slot, group_slots_by_date
from medibook.routes.common import ensure_database_ready, get_db, to_http_exception
from medibook.services.availability import AvailabilityService
from medibook.services.booking import BookingService
from medibook.services.errors import SchedulingError
from medibook.services.notifications import NotificationDispatcher, get_notifier

router = APIRouter(tags=['availability'])


class AvailabilityRuleSchema(BaseModel):
    day: str
    start_time: str = Field(alias='startTime')
    end_time: str = Field(alias='endTime')

    class Config:
        populate_by_name = True

    @field_validator('day', 'start_time', 'end_time')
    @classmethod
    def strip_value(cls, value: str) -> str:
        return value.strip()

    def to_rule(self) -> AvailabilityRule:
        return AvailabilityRule(day=self.day, startTime=self.start_time, endTime=self.end_time)

    @classmethod
    def from_rule(cls, rule: AvailabilityRule) -> 'AvailabilityRuleSchema':
        return cls(day=rule.day, startTime=rule.startTime, endTime=rule.endTime)


class UpdateRuleRequest(BaseModel):
    field: str
    value: str


class SlotResponse(BaseModel):
    id: str
    date: str
    time: str
    date_time: datetime
    available: bool

    class Config:
        from_attributes = True


class SlotDayResponse(BaseModel):
    date: str
    slots: list[SlotResponse]


def _rules_response(rules: list[AvailabilityRule]) -> list[AvailabilityRuleSchema]:
    return [AvailabilityRuleSchema.from_rule(rule) for rule in rules]


def _slots_response(slots: list[Slot]) -> list[SlotResponse]:
    return [SlotResponse.model_validate(slot) for slot in slots]


@router.get('/doctors/{doctor_id}', response_model=list[AvailabilityRuleSchema])
def get_doctor_availability(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        rules = AvailabilityService(db).rules_for(doctor_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return _rules_response(rules)


@router.get('/doctors/{doctor_id}/slots', response_model=list[SlotResponse])
def list_doctor_slots(
    doctor_id: int,
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    ensure_database_ready()
    return _slots_response(BookingService(db, notifier).available_slots(doctor_id))


@router.get('/doctors/{doctor_id}/slots/by-date', response_model=list[SlotDayResponse])
def list_doctor_slots_by_date(
    doctor_id: int,
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    ensure_database_ready()
    grouped = group_slots_by_date(BookingService(db, notifier).available_slots(doctor_id))
    return [
        SlotDayResponse(date=day_label, slots=_slots_response(day_slots))
        for day_label, day_slots in grouped.items()
    ]


@router.put('/me', response_model=list[AvailabilityRuleSchema])
def save_my_availability(
    rules: list[AvailabilityRuleSchema],
    identity: Identity | None = Depends(get_optional_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        saved = AvailabilityService(db).save(identity, [rule.to_rule() for rule in rules])
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return _rules_response(saved)


@router.post('/me/rules', response_model=list[AvailabilityRuleSchema], status_code=status.HTTP_201_CREATED)
def add_my_availability_rule(
    identity: Identity | None = Depends(get_optional_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        saved = AvailabilityService(db).edit(identity, lambda schedule: schedule.add_rule())
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return _rules_response(saved)


@router.patch('/me/rules/{index}', response_model=list[AvailabilityRuleSchema])
def update_my_availability_rule(
    index: int,
    data: UpdateRuleRequest,
    identity: Identity | None = Depends(get_optional_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        saved = AvailabilityService(db).edit(
            identity,
            lambda schedule: schedule.update_rule(index, data.field, data.value.strip()),
        )
    except IndexError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Availability rule not found.') from exc
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return _rules_response(saved)


@router.delete('/me/rules/{index}', response_model=list[AvailabilityRuleSchema])
def remove_my_availability_rule(
    index: int,
    identity: Identity | None = Depends(get_optional_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        saved = AvailabilityService(db).edit(identity, lambda schedule: schedule.remove_rule(index))
    except IndexError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Availability rule not found.') from exc
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return _rules_response(saved)
