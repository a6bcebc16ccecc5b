"""Event handlers - turn outbox events into notifications."""
import logging
from typing import Any, Callable, Dict, List

from ..core.enums import NotificationPriority, PHASE_LABELS, LearningPhase, RoleName
from ..notifications.notifier import Notification, Notifier

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]


def handle_booking_created(payload: Payload, notifier: Notifier) -> None:
    """Tell the instructor a learner took a seat."""
    notifier.send(
        Notification(
            recipient_id=payload["instructor_id"],
            title="New booking",
            message=(
                f"A student booked your {payload['lesson_type']} lesson on "
                f"{payload['lesson_date']} at {payload['start_time'][:5]}."
            ),
            category="booking",
            data={"booking_id": payload["booking_id"], "schedule_id": payload["schedule_id"]},
        )
    )


def handle_booking_cancelled(payload: Payload, notifier: Notifier) -> None:
    """Tell whoever did not cancel."""
    when = f"{payload['lesson_date']} at {payload['start_time'][:5]}"
    if payload.get("by_administrator"):
        notifier.send(
            Notification(
                recipient_id=payload["student_id"],
                title="Lesson cancelled",
                message=f"Your lesson on {when} was cancelled by the school administration.",
                category="booking",
                priority=NotificationPriority.HIGH,
                data={"booking_id": payload["booking_id"], "reason": payload.get("reason")},
            )
        )
        return
    notifier.send(
        Notification(
            recipient_id=payload["instructor_id"],
            title="Booking cancelled",
            message=f"A student cancelled the lesson on {when}.",
            category="booking",
            data={"booking_id": payload["booking_id"], "reason": payload.get("reason")},
        )
    )


def handle_booking_completed(payload: Payload, notifier: Notifier) -> None:
    message = (
        f"Lesson completed: {payload['hours_completed']}h recorded, "
        f"{payload['total_hours']}h in total."
    )
    if payload.get("ready_for_exam"):
        message += " You now meet the requirements for the driving exam."
    notifier.send(
        Notification(
            recipient_id=payload["student_id"],
            title="Lesson completed",
            message=message,
            category="progress",
            data={"booking_id": payload["booking_id"], "rating": payload["performance_rating"]},
        )
    )


def handle_slot_cancelled(payload: Payload, notifier: Notifier) -> None:
    affected: List[str] = payload.get("affected_student_ids") or []
    notifier.send(
        Notification(
            recipient_id=payload["owner_id"],
            title="Schedule removed",
            message=(
                f"Your slot on {payload['lesson_date']} at {payload['start_time'][:5]} was removed "
                f"by an administrator ({len(affected)} booking(s) cancelled)."
            ),
            category="schedule",
            data={"slot_id": payload["slot_id"]},
        )
    )


def handle_student_marked_absent(payload: Payload, notifier: Notifier) -> None:
    notifier.send(
        Notification(
            recipient_id=payload["student_id"],
            title="Absence recorded",
            message=(
                f"You were marked absent on {payload['session_date']}. "
                f"Consecutive absences: {payload['consecutive_absences']}."
            ),
            category="attendance",
            data={"session_id": payload["session_id"], "group_id": payload["group_id"]},
        )
    )


def handle_absence_escalated(payload: Payload, notifier: Notifier) -> None:
    name = payload.get("student_name") or payload["student_id"]
    notifier.send(
        Notification(
            audience=RoleName.ADMIN,
            title="Student needs follow-up",
            message=f"{name} has missed {payload['consecutive_absences']} sessions in a row.",
            category="attendance",
            priority=NotificationPriority.HIGH,
            data={"student_id": payload["student_id"], "group_id": payload["group_id"]},
        )
    )


def handle_phase_advanced(payload: Payload, notifier: Notifier) -> None:
    previous = PHASE_LABELS[LearningPhase(payload["previous_phase"])]
    notifier.send(
        Notification(
            recipient_id=payload["student_id"],
            title="Learning phase updated",
            message=f"You moved from {previous} to {payload['new_phase_label']}.",
            category="progress",
            data={"group_id": payload["group_id"], "phase": payload["new_phase"]},
        )
    )


def handle_rank_changed(payload: Payload, notifier: Notifier) -> None:
    notifier.send(
        Notification(
            recipient_id=payload["student_id"],
            title="New rank",
            message=f"Your rank is now {payload['rank_name']} (level {payload['new_rank']}).",
            category="progress",
            data={"group_id": payload["group_id"], "reason": payload.get("reason")},
        )
    )


def handle_group_transferred(payload: Payload, notifier: Notifier) -> None:
    notifier.send(
        Notification(
            recipient_id=payload["student_id"],
            title="Group changed",
            message=f"You have been moved to the group {payload['new_group_name']}.",
            category="group",
            data={"group_id": payload["new_group_id"], "rank": payload["new_rank"]},
        )
    )
    notifier.send(
        Notification(
            recipient_id=payload["new_teacher_id"],
            title="New student in your group",
            message=(
                f"{payload.get('student_name') or payload['student_id']} joined "
                f"{payload['new_group_name']}."
            ),
            category="group",
            data={"group_id": payload["new_group_id"], "student_id": payload["student_id"]},
        )
    )


def handle_member_joined(payload: Payload, notifier: Notifier) -> None:
    name = payload.get("student_name") or payload["student_id"]
    if payload.get("by_administrator"):
        student_message = f"You have been added to {payload['group_name']} by an administrator."
    else:
        student_message = f"You joined {payload['group_name']}."
    notifier.send(
        Notification(
            recipient_id=payload["student_id"],
            title="Group joined",
            message=student_message,
            category="group",
            data={"group_id": payload["group_id"]},
        )
    )
    notifier.send(
        Notification(
            recipient_id=payload["teacher_id"],
            title="New student in your group",
            message=f"{name} joined {payload['group_name']}.",
            category="group",
            data={"group_id": payload["group_id"], "student_id": payload["student_id"]},
        )
    )


def handle_member_removed(payload: Payload, notifier: Notifier) -> None:
    """The learner hears about removals by others, the teacher about departures it did not make."""
    name = payload.get("student_name") or payload["student_id"]
    reason = payload.get("reason")
    suffix = f" Reason: {reason}" if reason else ""
    if not payload.get("self_removal"):
        notifier.send(
            Notification(
                recipient_id=payload["student_id"],
                title="Removed from group",
                message=f"You have been removed from {payload['group_name']}.{suffix}",
                category="group",
                priority=NotificationPriority.HIGH,
                data={"group_id": payload["group_id"], "reason": reason},
            )
        )
    if payload["removed_by"] == payload["teacher_id"]:
        return
    notifier.send(
        Notification(
            recipient_id=payload["teacher_id"],
            title="Student left your group",
            message=f"{name} is no longer in {payload['group_name']}.{suffix}",
            category="group",
            data={"group_id": payload["group_id"], "student_id": payload["student_id"]},
        )
    )


def handle_group_session_scheduled(payload: Payload, notifier: Notifier) -> None:
    topic = payload.get("topic") or "Group class"
    for student_id in payload.get("member_ids") or []:
        notifier.send(
            Notification(
                recipient_id=student_id,
                title="New group session",
                message=(
                    f"{topic} on {payload['session_date']} at {payload['start_time'][:5]} "
                    f"with {payload['group_name']}."
                ),
                category="group",
                data={"group_id": payload["group_id"], "session_id": payload["session_id"]},
            )
        )


def handle_exam_failed(payload: Payload, notifier: Notifier) -> None:
    notifier.send(
        Notification(
            recipient_id=payload["student_id"],
            title="Exam result",
            message="The exam was not passed this time. Your instructor will plan the next steps.",
            category="exam",
            data={"exam_date": payload["exam_date"]},
        )
    )


# Registry of event type -> handler function
EVENT_HANDLERS: Dict[str, Callable[[Payload, Notifier], None]] = {
    "event:BookingCreated": handle_booking_created,
    "event:BookingCancelled": handle_booking_cancelled,
    "event:BookingCompleted": handle_booking_completed,
    "event:SlotCancelled": handle_slot_cancelled,
    "event:StudentMarkedAbsent": handle_student_marked_absent,
    "event:AbsenceEscalated": handle_absence_escalated,
    "event:PhaseAdvanced": handle_phase_advanced,
    "event:RankChanged": handle_rank_changed,
    "event:GroupTransferred": handle_group_transferred,
    "event:ExamFailed": handle_exam_failed,
    "event:MemberJoined": handle_member_joined,
    "event:MemberRemoved": handle_member_removed,
    "event:GroupSessionScheduled": handle_group_session_scheduled,
}


def process_event(event_type: str, payload: Payload, notifier: Notifier) -> bool:
    """
    Route an outbox event to its handler.

    Returns True if handled, False if no handler is registered.
    """
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.warning("No handler registered for %s", event_type)
        return False
    handler(payload, notifier)
    return True
