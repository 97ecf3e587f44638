from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medibook.auth.dependencies import get_current_identity
from medibook.auth.identity import Identity
from medibook.routes.common import ensure_database_ready, get_db
from medibook.services.store import SchedulingStore

router = APIRouter(tags=['doctors'])


class DoctorResponse(BaseModel):
    id: int
    full_name: str
    specialty: str | None = None
    department: str
    bio: str | None = None
    avatar: str
    is_approved: bool


class ApprovalRequest(BaseModel):
    is_approved: bool = True


def avatar_for(doctor) -> str:
    return doctor.avatar_url or f'https://api.dicebear.com/7.x/initials/svg?seed={doctor.full_name}'


def to_doctor_response(doctor) -> DoctorResponse:
    return DoctorResponse(
        id=doctor.id,
        full_name=doctor.full_name or '',
        specialty=doctor.specialty,
        department=(doctor.department or '').lower(),
        bio=doctor.bio,
        avatar=avatar_for(doctor),
        is_approved=bool(doctor.is_approved),
    )


@router.get('', response_model=list[DoctorResponse])
def list_doctors(
    department: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        doctors = SchedulingStore(db).list_approved_doctors(department)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc

    return [to_doctor_response(doctor) for doctor in doctors]


@router.patch('/{doctor_id}/approval', response_model=DoctorResponse)
def set_doctor_approval(
    doctor_id: int,
    data: ApprovalRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    if not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only admins can approve doctors.',
        )

    ensure_database_ready()

    try:
        doctor = SchedulingStore(db).get_doctor(doctor_id)
        if doctor is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Doctor not found.',
            )

        doctor.is_approved = data.is_approved
        db.commit()
        db.refresh(doctor)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc

    return to_doctor_response(doctor)
