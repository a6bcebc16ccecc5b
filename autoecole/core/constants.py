"""Scheduling rules and user-facing messages."""

from __future__ import annotations

from datetime import timedelta

# Booking and cancellation must happen at least this long before the slot starts
BOOKING_FREEZE_HOURS = 2
BOOKING_FREEZE_WINDOW = timedelta(hours=BOOKING_FREEZE_HOURS)

# Consecutive absences that trigger an administrator escalation
ABSENCE_ESCALATION_THRESHOLD = 3

MIN_PHASE_NOTES_LENGTH = 5
MAX_REASON_LENGTH = 255
MAX_NOTES_LENGTH = 1000

MAX_LESSON_HOURS = 8
MIN_PERFORMANCE_RATING = 1
MAX_PERFORMANCE_RATING = 5
TOP_SKILLS_LIMIT = 5

# Default rank ladder applied to groups without their own definitions
DEFAULT_RANKS = [
    {"level": 1, "name": "Beginner", "description": "Just started", "unlocked_features": ["basic_lessons"]},
    {
        "level": 2,
        "name": "Intermediate",
        "description": "Making progress",
        "unlocked_features": ["basic_lessons", "practice_tests"],
    },
    {
        "level": 3,
        "name": "Advanced",
        "description": "Almost ready",
        "unlocked_features": ["basic_lessons", "practice_tests", "mock_exams"],
    },
    {
        "level": 4,
        "name": "Expert",
        "description": "Exam ready",
        "unlocked_features": ["basic_lessons", "practice_tests", "mock_exams", "final_exam"],
    },
    {
        "level": 5,
        "name": "Master",
        "description": "Licensed driver",
        "unlocked_features": ["all"],
    },
]

# Error messages
ERROR_SLOT_OVERLAP = "This time slot overlaps with an existing schedule"
ERROR_END_BEFORE_START = "End time must be after start time"
ERROR_SLOT_IN_PAST = "Cannot create a schedule in the past"
ERROR_SLOT_HAS_BOOKINGS = "Cannot modify a schedule with booked students"
ERROR_SLOT_FULL = "This schedule is fully booked"
ERROR_SLOT_NOT_AVAILABLE = "This schedule is not available for booking"
ERROR_FREEZE_WINDOW = (
    f"Bookings and cancellations must be made at least {BOOKING_FREEZE_HOURS} hours "
    "before the lesson starts"
)
ERROR_ALREADY_BOOKED = "You have already booked this lesson"
ERROR_PHASE_GATE = (
    "You need to complete the theory phase (Code) before booking individual lessons. "
    "Continue attending your group sessions to progress."
)
ERROR_BOOKING_ALREADY_CANCELLED = "Booking is already cancelled"
ERROR_BOOKING_ALREADY_COMPLETED = "This lesson is already marked as completed"
ERROR_COMPLETE_CANCELLED = "Cannot complete a cancelled booking"
ERROR_COMPLETE_BEFORE_END = "Cannot mark a lesson as completed before it ends"
ERROR_ATTENDANCE_ALREADY_MARKED = "Attendance already marked for this session"
ERROR_NO_ACTIVE_MEMBERS = "No active members in this group"
ERROR_MAX_RANK = "Student is already at maximum rank"
ERROR_CONCURRENT_MODIFICATION = "This record was changed by another request, please retry"
ERROR_SCHEDULE_BUSY = "Another change to this instructor's schedule is in progress, please retry"
ERROR_GROUP_FULL = "This group is full"
ERROR_GROUP_INACTIVE = "This group is not accepting new members"
ERROR_ALREADY_IN_GROUP = "Student is already a member of a group"
ERROR_NOT_GROUP_MEMBER = "Student is not an active member of this group"
ERROR_SESSION_HAS_ATTENDANCE = "Cannot delete a session whose attendance was taken"
