"""Errors raised by the scheduling services.

Each error carries the message shown to the end user; routes translate them
into HTTP responses.
"""


class SchedulingError(Exception):
    default_message = 'Something went wrong. Please try again.'

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationRequired(SchedulingError):
    default_message = 'Please sign in to book an appointment.'


class PermissionDenied(SchedulingError):
    default_message = 'You are not allowed to perform this action.'


class InvalidAvailabilityRule(SchedulingError):
    default_message = 'Invalid availability rule.'


class AppointmentNotFound(SchedulingError):
    default_message = 'Appointment not found.'


class DoctorNotFound(SchedulingError):
    default_message = 'Doctor not found.'


class PersistenceFailure(SchedulingError):
    pass


class BookingFailed(PersistenceFailure):
    default_message = 'Could not create appointment. Please try again.'


class RescheduleFailed(PersistenceFailure):
    default_message = 'Failed to reschedule appointment.'


class AppointmentUpdateFailed(PersistenceFailure):
    default_message = 'Failed to update appointment.'


class AvailabilitySaveFailed(PersistenceFailure):
    default_message = 'Failed to update availability.'


class NotificationFailure(SchedulingError):
    default_message = 'Failed to send email notification.'


class InvalidAppointmentStatus(SchedulingError):
    default_message = 'Invalid appointment status.'
