"""Principal abstraction for the caller identity supplied by the boundary layer."""

from __future__ import annotations

from dataclasses import dataclass

from .core.enums import PRIVILEGED_ROLES, RoleName


@dataclass(frozen=True)
class Actor:
    """Authenticated subject and role; trusted as supplied."""

    subject_id: str
    role: RoleName

    @classmethod
    def of(cls, subject_id: str, role: RoleName | str) -> "Actor":
        return cls(subject_id=subject_id, role=RoleName(role))

    @property
    def id(self) -> str:
        return self.subject_id

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES

    def owns(self, patient_id: str, provider_id: str) -> bool:
        """True when the actor is the booking's patient or its assigned provider."""
        if self.role == RoleName.PATIENT:
            return self.subject_id == patient_id
        if self.role == RoleName.PROVIDER:
            return self.subject_id == provider_id
        return False

    def can_access(self, patient_id: str, provider_id: str) -> bool:
        return self.is_privileged or self.owns(patient_id, provider_id)
