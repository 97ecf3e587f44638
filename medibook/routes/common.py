from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from medibook.database import SessionLocal, ensure_appointment_schema, ensure_doctor_schema
from medibook.services.errors import (
    AppointmentNotFound,
    AuthenticationRequired,
    BookingFailed,
    DoctorNotFound,
    InvalidAppointmentStatus,
    InvalidAvailabilityRule,
    PermissionDenied,
    RescheduleFailed,
    SchedulingError,
)

_STATUS_BY_ERROR = (
    (AuthenticationRequired, status.HTTP_401_UNAUTHORIZED),
    (PermissionDenied, status.HTTP_403_FORBIDDEN),
    (AppointmentNotFound, status.HTTP_404_NOT_FOUND),
    (DoctorNotFound, status.HTTP_404_NOT_FOUND),
    (InvalidAvailabilityRule, status.HTTP_400_BAD_REQUEST),
    (InvalidAppointmentStatus, status.HTTP_400_BAD_REQUEST),
    (BookingFailed, status.HTTP_409_CONFLICT),
    (RescheduleFailed, status.HTTP_409_CONFLICT),
)


def ensure_database_ready() -> None:
    try:
        ensure_doctor_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def to_http_exception(error: SchedulingError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=error.message)
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=error.message)
