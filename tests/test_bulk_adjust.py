"""
Test: Bulk adjustment — compose, preview, back, commit with partial failure.
"""
import pytest

from scangrade.audit import get_audit_logs
from scangrade.errors import InvalidOperation, JustificationRequired
from scangrade.services.bulk_adjust import COMMITTED, COMPOSE, PREVIEW, BulkAdjustment
from scangrade.services.linking import link


@pytest.fixture
def developing(queue, add_completed):
    """Three developing-band students at 60, 72 and 79."""
    return [
        add_completed("s1", grade=60),
        add_completed("s2", grade=72),
        add_completed("s3", grade=79),
    ]


class TestCompose:
    def test_criteria_and_manual_delta(self, queue, developing):
        adj = BulkAdjustment(queue, "developing", developing)
        adj.toggle_criterion("showed_work")
        adj.toggle_criterion("computational_error")
        adj.set_manual_adjustment(-3)
        assert adj.total_delta == 12
        assert adj.justification == "Bulk grade adjusted based on: Showed Work, Computational Error Only"

    def test_toggle_off(self, queue, developing):
        adj = BulkAdjustment(queue, "developing", developing)
        adj.toggle_criterion("close_answer")
        adj.toggle_criterion("close_answer")
        assert adj.total_delta == 0
        assert adj.justification == ""

    def test_unknown_criterion(self, queue, developing):
        adj = BulkAdjustment(queue, "developing", developing)
        with pytest.raises(InvalidOperation):
            adj.toggle_criterion("bribery")

    @pytest.mark.parametrize("delta", [-21, 21])
    def test_manual_range(self, queue, developing, delta):
        adj = BulkAdjustment(queue, "developing", developing)
        with pytest.raises(InvalidOperation):
            adj.set_manual_adjustment(delta)

    def test_justification_required(self, queue, developing):
        adj = BulkAdjustment(queue, "developing", developing)
        adj.set_manual_adjustment(10)
        with pytest.raises(JustificationRequired):
            adj.proceed()
        adj.set_justification("   ")
        with pytest.raises(JustificationRequired):
            adj.proceed()
        assert adj.phase == COMPOSE

    def test_selection_must_be_in_band(self, queue, developing, add_completed):
        proficient = add_completed("s4", grade=92)
        with pytest.raises(InvalidOperation):
            BulkAdjustment(queue, "developing", developing + [proficient])

    def test_empty_selection(self, queue, developing):
        adj = BulkAdjustment(queue, "developing", [])
        adj.set_justification("Curve")
        with pytest.raises(InvalidOperation):
            adj.proceed()


class TestPreview:
    @pytest.mark.parametrize("level,grade,expected", [
        ("struggling", 55, 65),
        ("developing", 72, 82),
        ("proficient", 95, 100),
    ])
    def test_plus_ten(self, queue, add_completed, level, grade, expected):
        item_id = add_completed("s1", grade=grade)
        adj = BulkAdjustment(queue, level, [item_id])
        adj.set_manual_adjustment(10)
        adj.set_justification("Reassessed with rubric")
        [row] = adj.proceed()
        assert row["current_grade"] == grade
        assert row["new_grade"] == expected

    def test_preview_has_no_side_effects(self, queue, developing):
        adj = BulkAdjustment(queue, "developing", developing)
        adj.set_manual_adjustment(10)
        adj.set_justification("Curve")
        rows = adj.proceed()
        assert [r["new_grade"] for r in rows] == [70, 82, 89]
        assert all(queue.get(i).grade_override is None for i in developing)
        assert adj.phase == PREVIEW

    def test_clamped_at_zero(self, queue, add_completed):
        item_id = add_completed("s1", grade=None, possible=10, percentage=10)
        adj = BulkAdjustment(queue, "struggling", [item_id])
        adj.set_manual_adjustment(-20)
        adj.set_justification("Academic integrity review")
        assert adj.proceed()[0]["new_grade"] == 0

    def test_back_returns_to_compose(self, queue, developing):
        adj = BulkAdjustment(queue, "developing", developing)
        adj.set_justification("Curve")
        adj.proceed()
        adj.back()
        assert adj.phase == COMPOSE
        adj.set_manual_adjustment(5)
        assert [r["new_grade"] for r in adj.proceed()] == [65, 77, 84]

    def test_cannot_compose_in_preview(self, queue, developing):
        adj = BulkAdjustment(queue, "developing", developing)
        adj.set_justification("Curve")
        adj.proceed()
        with pytest.raises(InvalidOperation):
            adj.set_manual_adjustment(3)


class TestCommit:
    def test_commit_saves_and_overrides(self, queue, developing, fake_gradebook):
        gradebook = fake_gradebook()
        adj = BulkAdjustment(queue, "developing", developing)
        adj.toggle_criterion("effort_evident")
        adj.proceed()

        outcome = adj.commit(gradebook)

        assert outcome.success_count == 3
        assert adj.phase == COMMITTED
        assert [s["grade"] for s in gradebook.saves] == [65, 77, 84]
        assert gradebook.saves[0]["justification"] == "Bulk grade adjusted based on: Effort Evident"
        item = queue.get(developing[1])
        assert item.grade_override == 77
        assert item.override_justification == "Bulk grade adjusted based on: Effort Evident"

    def test_partial_failure_reported(self, queue, developing, fake_gradebook):
        gradebook = fake_gradebook(fail_for={"s2"})
        adj = BulkAdjustment(queue, "developing", developing)
        adj.set_manual_adjustment(5)
        adj.set_justification("Curve")
        adj.proceed()

        outcome = adj.commit(gradebook)

        assert outcome.succeeded == [developing[0], developing[2]]
        assert outcome.failed[0]["item_id"] == developing[1]
        assert outcome.failed[0]["student_id"] == "s2"
        assert "disk full" in outcome.failed[0]["error"]
        assert queue.get(developing[1]).grade_override is None
        assert queue.get(developing[2]).grade_override == 84

    def test_commit_requires_preview(self, queue, developing, fake_gradebook):
        adj = BulkAdjustment(queue, "developing", developing)
        with pytest.raises(InvalidOperation):
            adj.commit(fake_gradebook())

    def test_commit_is_audited(self, queue, developing, fake_gradebook):
        adj = BulkAdjustment(queue, "developing", developing[:1])
        adj.set_justification("Curve")
        adj.set_manual_adjustment(2)
        adj.proceed()
        adj.commit(fake_gradebook())
        [entry] = get_audit_logs()
        assert entry["action"] == "BULK_GRADE_OVERRIDE"
        assert entry["details"] == "student=s1 grade=62 delta=+2"


class TestCommitAfterQueueChange:
    """Items touched between preview and commit are failed, never half-saved."""

    @pytest.fixture
    def previewed(self, queue, developing):
        adj = BulkAdjustment(queue, "developing", developing)
        adj.set_manual_adjustment(5)
        adj.set_justification("Curve")
        adj.proceed()
        return adj

    def test_linked_item_not_saved(self, queue, developing, previewed, fake_gradebook):
        gradebook = fake_gradebook()
        link(queue, developing[1], developing[0])

        outcome = previewed.commit(gradebook)

        assert outcome.succeeded == [developing[0], developing[2]]
        assert [f["item_id"] for f in outcome.failed] == [developing[1]]
        assert outcome.failed[0]["student_id"] == "s2"
        assert [s["student_id"] for s in gradebook.saves] == ["s1", "s3"]
        assert queue.get(developing[1]).grade_override is None

    def test_reanalyzed_item_not_saved(self, queue, developing, previewed, fake_gradebook, result_factory):
        gradebook = fake_gradebook()
        queue.begin_analyzing(developing[2])
        queue.complete(developing[2], result_factory(grade=95))

        outcome = previewed.commit(gradebook)

        assert outcome.succeeded == [developing[0], developing[1]]
        assert outcome.failed[0]["item_id"] == developing[2]
        assert "re-analyzed" in outcome.failed[0]["error"]
        assert [s["student_id"] for s in gradebook.saves] == ["s1", "s2"]
        assert queue.get(developing[2]).grade_override is None

    def test_reassigned_item_not_saved(self, queue, developing, previewed, fake_gradebook):
        gradebook = fake_gradebook()
        queue.swap_students(developing[0], developing[1])

        outcome = previewed.commit(gradebook)

        assert outcome.succeeded == [developing[2]]
        assert {f["student_id"] for f in outcome.failed} == {"s1", "s2"}
        assert all("no longer assigned" in f["error"] for f in outcome.failed)
        assert [s["student_id"] for s in gradebook.saves] == ["s3"]

    def test_rejected_rows_not_audited(self, queue, developing, previewed, fake_gradebook):
        link(queue, developing[1], developing[0])
        previewed.commit(fake_gradebook())
        details = [e["details"] for e in get_audit_logs()]
        assert len(details) == 2
        assert not any("student=s2" in d for d in details)

    def test_failed_save_restores_earlier_override(self, queue, add_completed, fake_gradebook):
        item_id = add_completed("s1", grade=60)
        queue.set_grade_override(item_id, 70, "Regraded by hand")
        adj = BulkAdjustment(queue, "developing", [item_id])
        adj.set_manual_adjustment(5)
        adj.set_justification("Curve")
        adj.proceed()

        outcome = adj.commit(fake_gradebook(fail_for={"s1"}))

        assert outcome.failure_count == 1
        item = queue.get(item_id)
        assert item.grade_override == 70
        assert item.override_justification == "Regraded by hand"
