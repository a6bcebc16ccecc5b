"""Tests for the learning phase state machine and rank progression."""

import pytest

from autoecole.core.config import settings
from autoecole.core.enums import LearningPhase, MembershipStatus
from autoecole.core.principal import Principal
from autoecole.models.group import Group, GroupMembership

from ..factories import TODAY, make_group, make_member

SHORT_LADDER = [
    {"level": 1, "name": "Débutant", "unlocked_features": ["basic_lessons"]},
    {"level": 2, "name": "Confirmé", "unlocked_features": ["basic_lessons", "practice_tests"]},
    {"level": 3, "name": "Avancé", "unlocked_features": ["basic_lessons", "practice_tests", "mock_exams"]},
]


def _phase(requested: LearningPhase, notes: str = "Maîtrise le code", force: bool = False) -> dict:
    return {"requested_phase": requested.value, "notes": notes, "force": force}


@pytest.fixture
def group(db):
    return make_group(db, teacher_id="instructor-1")


@pytest.mark.integration
class TestUpdatePhase:
    def test_teacher_advances_to_next_phase(self, engine, db, notifier, group, instructor):
        member = make_member(db, group, "student-1")

        result = engine.update_phase(instructor, group.id, "student-1", _phase(LearningPhase.CRENEAU))

        assert result.success
        assert result.data.phase == LearningPhase.CRENEAU.value
        assert result.data.phase_label == "Créneau"
        assert member.phase_notes == "Maîtrise le code"
        assert member.phase_updated_by == instructor.user_id
        messages = [n.message for n in notifier.for_recipient("student-1")]
        assert messages == ["You moved from Code to Créneau."]

    def test_full_path_one_step_at_a_time(self, engine, db, group, admin):
        make_member(db, group, "student-1")
        for target in (LearningPhase.CRENEAU, LearningPhase.CONDUITE, LearningPhase.EXAM_PREPARATION):
            assert engine.update_phase(admin, group.id, "student-1", _phase(target)).success

    def test_skipping_a_phase_is_rejected(self, engine, db, group, instructor):
        member = make_member(db, group, "student-1")

        result = engine.update_phase(instructor, group.id, "student-1", _phase(LearningPhase.CONDUITE))

        assert result.error.code == "INVALID_PHASE_TRANSITION"
        assert result.error.category == "validation_error"
        assert result.error.message == (
            'Invalid transition. Current phase is "Code". Next allowed phase is "Créneau".'
        )
        assert member.phase == LearningPhase.CODE.value

    def test_passed_cannot_be_set_manually(self, engine, db, group, instructor):
        make_member(db, group, "student-1", phase=LearningPhase.EXAM_PREPARATION)

        result = engine.update_phase(instructor, group.id, "student-1", _phase(LearningPhase.PASSED))

        assert result.error.code == "INVALID_PHASE_TRANSITION"
        assert result.error.details["next_allowed_phase"] is None

    def test_backwards_move_rejected(self, engine, db, group, instructor):
        make_member(db, group, "student-1", phase=LearningPhase.CONDUITE)
        result = engine.update_phase(instructor, group.id, "student-1", _phase(LearningPhase.CRENEAU))
        assert result.error.code == "INVALID_PHASE_TRANSITION"

    def test_short_notes_rejected(self, engine, db, group, instructor):
        make_member(db, group, "student-1")
        result = engine.update_phase(
            instructor, group.id, "student-1", _phase(LearningPhase.CRENEAU, notes=" ok ")
        )
        assert result.error.category == "validation_error"
        assert "at least 5 characters" in result.error.message

    def test_other_teacher_forbidden(self, engine, db, group, other_instructor):
        make_member(db, group, "student-1")
        result = engine.update_phase(other_instructor, group.id, "student-1", _phase(LearningPhase.CRENEAU))
        assert result.error.code == "NOT_GROUP_TEACHER"

    def test_student_forbidden(self, engine, db, group, student):
        make_member(db, group, "student-1")
        result = engine.update_phase(student, group.id, "student-1", _phase(LearningPhase.CRENEAU))
        assert result.error.category == "authorization_error"

    def test_non_member(self, engine, group, instructor):
        result = engine.update_phase(instructor, group.id, "ghost", _phase(LearningPhase.CRENEAU))
        assert result.error.code == "MEMBERSHIP_NOT_FOUND"

    def test_force_disabled_by_default(self, engine, db, group, admin):
        make_member(db, group, "student-1")
        result = engine.update_phase(
            admin, group.id, "student-1", _phase(LearningPhase.CONDUITE, force=True)
        )
        assert result.error.code == "PHASE_OVERRIDE_DISABLED"

    def test_admin_override_when_enabled(self, engine, db, monkeypatch, group, admin):
        monkeypatch.setattr(settings, "allow_admin_phase_override", True)
        member = make_member(db, group, "student-1")

        result = engine.update_phase(admin, group.id, "student-1", _phase(LearningPhase.CONDUITE, force=True))

        assert result.success
        assert member.phase == LearningPhase.CONDUITE.value

    def test_override_never_sets_passed(self, engine, db, monkeypatch, group, admin):
        monkeypatch.setattr(settings, "allow_admin_phase_override", True)
        make_member(db, group, "student-1")

        result = engine.update_phase(admin, group.id, "student-1", _phase(LearningPhase.PASSED, force=True))

        assert result.error.code == "PASSED_BY_EXAM_ONLY"

    def test_teacher_cannot_force(self, engine, db, monkeypatch, group, instructor):
        monkeypatch.setattr(settings, "allow_admin_phase_override", True)
        make_member(db, group, "student-1")
        result = engine.update_phase(
            instructor, group.id, "student-1", _phase(LearningPhase.CONDUITE, force=True)
        )
        assert result.error.code == "PHASE_OVERRIDE_DISABLED"


@pytest.mark.integration
class TestRanks:
    def test_rank_up(self, engine, db, notifier, group, admin):
        member = make_member(db, group, "student-1", rank=2)

        result = engine.rank_up(admin, group.id, "student-1", {"reason": "Très bon niveau"})

        assert result.data.rank == 3
        assert member.rank_reason == "Très bon niveau"
        assert "Advanced" in notifier.for_recipient("student-1")[-1].message

    def test_rank_up_at_max_rejected(self, engine, db, group, admin):
        make_member(db, group, "student-1", rank=5)
        result = engine.rank_up(admin, group.id, "student-1")
        assert result.error.code == "MAX_RANK"

    def test_rank_up_is_admin_only(self, engine, db, group, instructor):
        make_member(db, group, "student-1")
        result = engine.rank_up(instructor, group.id, "student-1")
        assert result.error.code == "ADMIN_REQUIRED"

    def test_set_rank_within_range(self, engine, db, group, admin):
        make_member(db, group, "student-1")
        result = engine.set_rank(admin, group.id, "student-1", {"rank": 4, "reason": "Ajustement"})
        assert result.data.rank == 4

    @pytest.mark.parametrize("rank", [0, 6])
    def test_set_rank_outside_range(self, engine, db, group, admin, rank):
        make_member(db, group, "student-1")
        result = engine.set_rank(admin, group.id, "student-1", {"rank": rank})
        assert result.error.code == "RANK_OUT_OF_RANGE"
        assert result.error.details["max_rank"] == 5

    def test_rank_info(self, engine, db, group, student):
        make_member(db, group, "student-1", rank=2)

        info = engine.get_rank_info(student, "student-1").data

        assert info.rank_name == "Intermediate"
        assert info.next_rank_name == "Advanced"
        assert info.is_max_rank is False
        assert info.unlocked_features == ["basic_lessons", "practice_tests"]

    def test_rank_info_of_someone_else_forbidden(self, engine, db, group, other_student):
        make_member(db, group, "student-1")
        result = engine.get_rank_info(other_student, "student-1")
        assert result.error.code == "NOT_RANK_OWNER"

    def test_feature_unlocks(self, engine, db, group):
        make_member(db, group, "student-1", rank=3)
        make_member(db, group, "student-2", rank=5)

        assert engine.ranks.has_feature_unlocked("student-1", "mock_exams")
        assert not engine.ranks.has_feature_unlocked("student-1", "final_exam")
        assert engine.ranks.has_feature_unlocked("student-2", "anything")
        assert not engine.ranks.has_feature_unlocked("nobody", "basic_lessons")


@pytest.mark.integration
class TestTransferGroup:
    def test_transfer_caps_rank_and_resets_progress(self, engine, db, notifier, group, admin):
        old = make_member(db, group, "student-1", phase=LearningPhase.CONDUITE, rank=5, consecutive_absences=2)
        target = make_group(db, teacher_id="instructor-2", name="Groupe B", ranks=SHORT_LADDER)

        result = engine.transfer_group(admin, "student-1", {"new_group_id": target.id, "reason": "Horaires"})

        assert result.success
        moved = result.data
        assert moved.group_id == target.id
        assert moved.rank == 3
        assert moved.phase == LearningPhase.CODE.value
        assert moved.consecutive_absences == 0
        assert moved.student_name == old.student_name

        assert old.status == MembershipStatus.CHANGED.value
        assert old.left_reason == "Horaires"
        assert db.get(Group, group.id).current_students == 0
        assert db.get(Group, target.id).current_students == 1
        active = db.query(GroupMembership).filter_by(student_id="student-1", status="active").all()
        assert [m.group_id for m in active] == [target.id]
        assert "New student in your group" in [n.title for n in notifier.for_recipient("instructor-2")]

    def test_rank_within_range_is_kept(self, engine, db, group, admin):
        make_member(db, group, "student-1", rank=2)
        target = make_group(db, name="Groupe B", ranks=SHORT_LADDER)

        result = engine.transfer_group(admin, "student-1", {"new_group_id": target.id})

        assert result.data.rank == 2

    def test_rank_raised_to_target_minimum(self, engine, db, group, admin):
        make_member(db, group, "student-1", rank=1)
        ladder = [{"level": 3, "name": "C"}, {"level": 4, "name": "D"}]
        target = make_group(db, name="Groupe C", ranks=ladder)

        result = engine.transfer_group(admin, "student-1", {"new_group_id": target.id})

        assert result.data.rank == 3

    def test_transfer_without_previous_group(self, engine, db, admin):
        target = make_group(db, name="Groupe B", ranks=SHORT_LADDER)

        result = engine.transfer_group(admin, "student-9", {"new_group_id": target.id})

        assert result.success
        assert result.data.rank == 1
        assert db.get(Group, target.id).current_students == 1

    def test_same_group_rejected(self, engine, db, group, admin):
        make_member(db, group, "student-1")
        result = engine.transfer_group(admin, "student-1", {"new_group_id": group.id})
        assert result.error.code == "SAME_GROUP"

    def test_same_group_reported_before_capacity(self, engine, db, admin):
        full = make_group(db, name="Complet", max_students=1)
        make_member(db, full, "student-1")
        result = engine.transfer_group(admin, "student-1", {"new_group_id": full.id})
        assert result.error.code == "SAME_GROUP"

    def test_full_target_rejected(self, engine, db, group, admin):
        make_member(db, group, "student-1")
        target = make_group(db, name="Complet", max_students=1)
        make_member(db, target, "student-2")

        result = engine.transfer_group(admin, "student-1", {"new_group_id": target.id})

        assert result.error.code == "GROUP_FULL"

    def test_inactive_target_rejected(self, engine, db, group, admin):
        make_member(db, group, "student-1")
        target = make_group(db, name="Archivé", status="archived")
        result = engine.transfer_group(admin, "student-1", {"new_group_id": target.id})
        assert result.error.code == "GROUP_INACTIVE"

    def test_transfer_is_admin_only(self, engine, db, group, instructor):
        make_member(db, group, "student-1")
        target = make_group(db, name="Groupe B")
        result = engine.transfer_group(instructor, "student-1", {"new_group_id": target.id})
        assert result.error.code == "ADMIN_REQUIRED"


@pytest.mark.integration
class TestExamOutcome:
    def _outcome(self, group, result: str) -> dict:
        return {
            "student_id": "student-1",
            "group_id": group.id,
            "result": result,
            "exam_date": TODAY.isoformat(),
        }

    def test_pass_promotes_and_sets_passed(self, engine, db, group):
        member = make_member(db, group, "student-1", phase=LearningPhase.EXAM_PREPARATION, rank=4)

        result = engine.record_exam_outcome(Principal.system(), self._outcome(group, "passed"))

        assert result.success
        assert member.rank == 5
        assert member.phase == LearningPhase.PASSED.value
        assert result.data.phase_label == "Validé"

    def test_pass_at_max_rank_keeps_rank(self, engine, db, group):
        member = make_member(db, group, "student-1", phase=LearningPhase.EXAM_PREPARATION, rank=5)

        result = engine.record_exam_outcome(Principal.system(), self._outcome(group, "passed"))

        assert result.success
        assert member.rank == 5
        assert member.phase == LearningPhase.PASSED.value

    def test_failure_only_notifies(self, engine, db, notifier, group):
        member = make_member(db, group, "student-1", phase=LearningPhase.EXAM_PREPARATION, rank=4)

        result = engine.record_exam_outcome(Principal.system(), self._outcome(group, "failed"))

        assert result.success
        assert member.rank == 4
        assert member.phase == LearningPhase.EXAM_PREPARATION.value
        assert [n.title for n in notifier.for_recipient("student-1")] == ["Exam result"]

    def test_teacher_cannot_record_outcomes(self, engine, db, group, instructor):
        make_member(db, group, "student-1", phase=LearningPhase.EXAM_PREPARATION)
        result = engine.record_exam_outcome(instructor, self._outcome(group, "passed"))
        assert result.error.code == "ADMIN_REQUIRED"
