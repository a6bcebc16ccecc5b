"""Tests for group membership and the group calendar."""

from datetime import time

import pytest

from autoecole.core.enums import GroupStatus, LearningPhase, MembershipStatus
from autoecole.models.group import Group, GroupMembership, GroupSession

from ..factories import TODAY, TOMORROW, make_group, make_member, make_session


def _session_payload(**overrides) -> dict:
    payload = {
        "date": TOMORROW.isoformat(),
        "start_time": "18:00",
        "end_time": "19:30",
        "topic": "Signalisation",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def group(db):
    return make_group(db, teacher_id="instructor-1", max_students=2)


@pytest.mark.integration
class TestJoinGroup:
    def test_student_joins(self, engine, db, notifier, group, student):
        result = engine.join_group(student, group.id, {"student_name": "Amine K."})

        assert result.success
        assert result.data.status == MembershipStatus.ACTIVE.value
        assert result.data.phase == LearningPhase.CODE.value
        assert result.data.rank == 1
        assert result.data.consecutive_absences == 0
        assert db.get(Group, group.id).current_students == 1
        assert [n.title for n in notifier.for_recipient("student-1")] == ["Group joined"]
        assert "Amine K. joined Groupe A." in [n.message for n in notifier.for_recipient("instructor-1")]

    def test_one_active_group_per_student(self, engine, db, group, student):
        other = make_group(db, name="Groupe B")
        engine.join_group(student, other.id)

        result = engine.join_group(student, group.id)

        assert result.error.code == "ALREADY_IN_GROUP"
        assert result.error.details == {"group_id": other.id}
        assert db.get(Group, group.id).current_students == 0

    def test_full_group_rejected(self, engine, db, group, student):
        make_member(db, group, "student-8")
        make_member(db, group, "student-9")

        result = engine.join_group(student, group.id)

        assert result.error.code == "GROUP_FULL"
        assert result.error.details["max_students"] == 2

    def test_inactive_group_rejected(self, engine, db, student):
        archived = make_group(db, name="Ancien", status=GroupStatus.ARCHIVED.value)
        assert engine.join_group(student, archived.id).error.code == "GROUP_INACTIVE"

    def test_only_students_join(self, engine, group, instructor):
        assert engine.join_group(instructor, group.id).error.code == "STUDENT_REQUIRED"

    def test_unknown_group(self, engine, student):
        assert engine.join_group(student, "nope").error.code == "GROUP_NOT_FOUND"

    def test_rejoin_after_leaving(self, engine, db, group, student):
        engine.join_group(student, group.id)
        engine.leave_group(student, group.id)

        result = engine.join_group(student, group.id)

        assert result.success
        rows = db.query(GroupMembership).filter(GroupMembership.student_id == "student-1").all()
        assert sorted(m.status for m in rows) == ["active", "removed"]
        assert db.get(Group, group.id).current_students == 1


@pytest.mark.integration
class TestAddMember:
    def test_admin_enrols_a_student(self, engine, db, notifier, group, admin):
        result = engine.add_member(admin, group.id, {"student_id": "student-5", "student_name": "Sara B."})

        assert result.success
        assert result.data.student_id == "student-5"
        assert db.get(Group, group.id).current_students == 1
        messages = [n.message for n in notifier.for_recipient("student-5")]
        assert messages == ["You have been added to Groupe A by an administrator."]

    def test_teacher_cannot_enrol(self, engine, group, instructor):
        result = engine.add_member(instructor, group.id, {"student_id": "student-5"})
        assert result.error.code == "ADMIN_REQUIRED"

    def test_student_already_elsewhere(self, engine, db, group, admin):
        other = make_group(db, name="Groupe B")
        make_member(db, other, "student-5")

        result = engine.add_member(admin, group.id, {"student_id": "student-5"})

        assert result.error.code == "ALREADY_IN_GROUP"

    def test_capacity_applies_to_admins(self, engine, db, group, admin):
        make_member(db, group, "student-8")
        make_member(db, group, "student-9")

        assert engine.add_member(admin, group.id, {"student_id": "student-5"}).error.code == "GROUP_FULL"

    def test_rank_starts_at_group_minimum(self, engine, db, admin):
        ladder = [{"level": 3, "name": "Trois"}, {"level": 4, "name": "Quatre"}]
        senior = make_group(db, name="Groupe C", ranks=ladder)

        result = engine.add_member(admin, senior.id, {"student_id": "student-5"})

        assert result.data.rank == 3


@pytest.mark.integration
class TestLeaveAndRemove:
    def test_student_leaves(self, engine, db, notifier, group, student):
        engine.join_group(student, group.id)
        notifier.sent.clear()

        result = engine.leave_group(student, group.id)

        assert result.success
        assert result.data.status == MembershipStatus.REMOVED.value
        membership = db.query(GroupMembership).filter(GroupMembership.student_id == "student-1").one()
        assert membership.left_at is not None
        assert db.get(Group, group.id).current_students == 0
        assert notifier.for_recipient("student-1") == []
        assert [n.title for n in notifier.for_recipient("instructor-1")] == ["Student left your group"]

    def test_leave_without_membership(self, engine, group, student):
        assert engine.leave_group(student, group.id).error.code == "NOT_GROUP_MEMBER"

    def test_teacher_removes_a_member(self, engine, db, notifier, group, instructor):
        make_member(db, group, "student-1")

        result = engine.remove_member(instructor, group.id, "student-1", {"reason": "Moved away"})

        assert result.data.status == MembershipStatus.REMOVED.value
        assert db.get(Group, group.id).current_students == 0
        removal = notifier.for_recipient("student-1")
        assert removal[0].message == "You have been removed from Groupe A. Reason: Moved away"
        assert notifier.for_recipient("instructor-1") == []

    def test_admin_removal_notifies_teacher(self, engine, db, notifier, group, admin):
        make_member(db, group, "student-1")

        engine.remove_member(admin, group.id, "student-1", {"reason": "Unpaid fees"})

        assert [n.title for n in notifier.for_recipient("instructor-1")] == ["Student left your group"]
        membership = db.query(GroupMembership).filter(GroupMembership.student_id == "student-1").one()
        assert membership.left_reason == "Unpaid fees"

    def test_other_teacher_cannot_remove(self, engine, db, group, other_instructor):
        make_member(db, group, "student-1")
        result = engine.remove_member(other_instructor, group.id, "student-1")
        assert result.error.code == "NOT_GROUP_TEACHER"

    def test_remove_unknown_member(self, engine, group, admin):
        assert engine.remove_member(admin, group.id, "student-7").error.code == "NOT_GROUP_MEMBER"

    def test_count_never_goes_negative(self, engine, db, group, admin):
        make_member(db, group, "student-1")
        group.current_students = 0
        db.commit()

        engine.remove_member(admin, group.id, "student-1")

        assert db.get(Group, group.id).current_students == 0


@pytest.mark.integration
class TestListMembers:
    def test_member_sees_classmates(self, engine, db, group, student):
        make_member(db, group, "student-1")
        make_member(db, group, "student-2")

        result = engine.list_group_members(student, group.id)

        assert [m.student_id for m in result.data] == ["student-1", "student-2"]

    def test_outsider_cannot_list(self, engine, db, group, other_student):
        make_member(db, group, "student-1")
        assert engine.list_group_members(other_student, group.id).error.code == "GROUP_ACCESS_DENIED"


@pytest.mark.integration
class TestGroupSessions:
    def test_teacher_schedules_a_session(self, engine, db, notifier, group, instructor):
        make_member(db, group, "student-1")
        make_member(db, group, "student-2")

        result = engine.create_group_session(instructor, group.id, _session_payload())

        assert result.success
        assert result.data.session_date == TOMORROW
        assert result.data.teacher_id == "instructor-1"
        assert result.data.lesson_type == "theory"
        assert db.get(GroupSession, result.data.id).duration_hours == 1.5
        for student_id in ("student-1", "student-2"):
            assert [n.title for n in notifier.for_recipient(student_id)] == ["New group session"]

    def test_admin_session_is_taught_by_the_group_teacher(self, engine, group, admin):
        result = engine.create_group_session(admin, group.id, _session_payload())
        assert result.data.teacher_id == "instructor-1"

    def test_other_teacher_cannot_schedule(self, engine, group, other_instructor):
        result = engine.create_group_session(other_instructor, group.id, _session_payload())
        assert result.error.code == "NOT_GROUP_TEACHER"

    def test_end_before_start_rejected(self, engine, group, instructor):
        result = engine.create_group_session(
            instructor, group.id, _session_payload(start_time="19:00", end_time="18:00")
        )
        assert result.error.code == "INVALID_REQUEST"

    def test_short_topic_rejected(self, engine, group, instructor):
        result = engine.create_group_session(instructor, group.id, _session_payload(topic="ab"))
        assert result.error.code == "INVALID_REQUEST"

    def test_scheduled_session_can_take_attendance(self, engine, db, group, instructor):
        make_member(db, group, "student-1")
        session = engine.create_group_session(
            instructor, group.id, _session_payload(date=TODAY.isoformat(), start_time="07:30", end_time="08:30")
        ).data

        result = engine.mark_attendance(instructor, session.id, {"present_student_ids": ["student-1"]})

        assert result.success

    def test_list_sessions_latest_first(self, engine, db, group, instructor):
        make_session(db, group, day=TODAY)
        make_session(db, group, day=TOMORROW, start=time(18, 0), end=time(19, 0))

        result = engine.list_group_sessions(instructor, group.id)

        assert [s.session_date for s in result.data] == [TOMORROW, TODAY]

    def test_delete_session(self, engine, db, group, instructor):
        session = make_session(db, group, day=TOMORROW)

        result = engine.delete_group_session(instructor, session.id)

        assert result.success
        assert db.query(GroupSession).count() == 0

    def test_session_with_attendance_is_kept(self, engine, db, group, instructor):
        make_member(db, group, "student-1")
        session = make_session(db, group)
        engine.mark_attendance(instructor, session.id, {"present_student_ids": []})

        result = engine.delete_group_session(instructor, session.id)

        assert result.error.code == "SESSION_HAS_ATTENDANCE"
        assert db.query(GroupSession).count() == 1

    def test_other_teacher_cannot_delete(self, engine, db, group, other_instructor):
        session = make_session(db, group, day=TOMORROW)
        result = engine.delete_group_session(other_instructor, session.id)
        assert result.error.code == "NOT_GROUP_TEACHER"

    def test_delete_unknown_session(self, engine, admin):
        assert engine.delete_group_session(admin, "nope").error.code == "SESSION_NOT_FOUND"
