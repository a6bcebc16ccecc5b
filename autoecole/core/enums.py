# autoecole/core/enums.py
"""
Closed enumerations shared by models, schemas and services.

Values are the persisted and wire representations, so they must not change.
"""

from enum import Enum


class RoleName(str, Enum):
    """Roles asserted by the identity provider."""

    ADMIN = "admin"
    INSTRUCTOR = "instructor"
    STUDENT = "student"


class LessonType(str, Enum):
    THEORY = "theory"
    PRACTICAL = "practical"
    EXAM_PREP = "exam-prep"


class SlotStatus(str, Enum):
    """Lifecycle of an instructor schedule slot."""

    AVAILABLE = "available"
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class LearningPhase(str, Enum):
    """
    Linear learning path of a group member.

    CODE is the theory phase. PASSED is only reached through an exam outcome.
    """

    CODE = "code"
    CRENEAU = "creneau"
    CONDUITE = "conduite"
    EXAM_PREPARATION = "exam-preparation"
    PASSED = "passed"

    @property
    def label(self) -> str:
        return PHASE_LABELS[self]


PHASE_LABELS = {
    LearningPhase.CODE: "Code",
    LearningPhase.CRENEAU: "Créneau",
    LearningPhase.CONDUITE: "Conduite",
    LearningPhase.EXAM_PREPARATION: "Prépa Examen",
    LearningPhase.PASSED: "Validé",
}


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    REMOVED = "removed"
    CHANGED = "changed"


class GroupStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"


class SessionAttendanceState(str, Enum):
    """Attendance state of a group session as seen on the day it runs."""

    NOT_STARTED = "not_started"
    PENDING = "pending"
    MARKED = "marked"


class ExamResult(str, Enum):
    PASSED = "passed"
    FAILED = "failed"


class NotificationPriority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
