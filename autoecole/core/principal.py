"""Principal abstraction for callers authenticated by the identity provider."""

from __future__ import annotations

from dataclasses import dataclass

from .enums import RoleName

SYSTEM_USER_ID = "system"


@dataclass(frozen=True)
class Principal:
    """The (user_id, role) pair asserted for a request."""

    user_id: str
    role: RoleName

    @property
    def id(self) -> str:
        return self.user_id

    @property
    def is_admin(self) -> bool:
        return self.role == RoleName.ADMIN

    @property
    def is_instructor(self) -> bool:
        return self.role == RoleName.INSTRUCTOR

    @property
    def is_student(self) -> bool:
        return self.role == RoleName.STUDENT

    @classmethod
    def system(cls) -> "Principal":
        """Principal used for engine-initiated actions such as exam outcomes."""
        return cls(user_id=SYSTEM_USER_ID, role=RoleName.ADMIN)
