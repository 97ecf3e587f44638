"""Per-request session context handed to the scheduling services."""

from dataclasses import dataclass

ROLE_PATIENT = "patient"
ROLE_DOCTOR = "doctor"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Identity:
    user_id: int
    email: str
    role: str = ROLE_PATIENT

    @property
    def is_doctor(self) -> bool:
        return self.role == ROLE_DOCTOR

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_user(cls, user) -> "Identity":
        return cls(user_id=user.id, email=user.email, role=user.role or ROLE_PATIENT)
