"""
Bulk Grade Adjustment
=====================
Two-phase, teacher-confirmed grade change for selected students of one
differentiation band.

    adj = BulkAdjustment(queue, "struggling", item_ids)
    adj.toggle_criterion("showed_work")      # compose
    adj.proceed()                            # needs a justification
    rows = adj.preview()                     # nothing changed yet
    outcome = adj.commit(gradebook)          # one save per student

Nothing is written before commit(). Each student's save is independent; a
failure is reported in the outcome and the others still go through.
"""
import logging

from ..audit import audit_log
from ..config import MANUAL_ADJUSTMENT_RANGE
from ..errors import InvalidOperation, JustificationRequired, ScanGradeError
from .aggregation import group_for_level
from .grade_resolution import item_grade
from .gradebook import raw_scores_for
from .outcome import StageOutcome

logger = logging.getLogger(__name__)

REASSESSMENT_CRITERIA = [
    {
        "id": "showed_work",
        "label": "Showed Work",
        "description": "Student showed their problem-solving process",
        "grade_adjustment": 5,
    },
    {
        "id": "partial_understanding",
        "label": "Partial Understanding",
        "description": "Demonstrated partial understanding of concepts",
        "grade_adjustment": 8,
    },
    {
        "id": "computational_error",
        "label": "Computational Error Only",
        "description": "Correct approach but arithmetic/calculation error",
        "grade_adjustment": 10,
    },
    {
        "id": "misread_problem",
        "label": "Misread Problem",
        "description": "Would have been correct if problem was read correctly",
        "grade_adjustment": 12,
    },
    {
        "id": "effort_evident",
        "label": "Effort Evident",
        "description": "Clear effort was made despite incorrect answer",
        "grade_adjustment": 5,
    },
    {
        "id": "close_answer",
        "label": "Close Answer",
        "description": "Answer was very close to correct",
        "grade_adjustment": 7,
    },
]

_CRITERIA_BY_ID = {c["id"]: c for c in REASSESSMENT_CRITERIA}

COMPOSE = 'compose'
PREVIEW = 'preview'
COMMITTED = 'committed'


def clamp_grade(grade):
    return max(0, min(100, grade))


class BulkAdjustment:
    def __init__(self, queue, level, item_ids, floor_policy=None):
        self.queue = queue
        self.level = level
        self.floor_policy = floor_policy
        self.phase = COMPOSE
        self.selected_criteria = []
        self.manual_adjustment = 0
        self.justification = ''
        self._rows = []

        group = group_for_level(queue.list_items(), level, floor_policy)
        in_band = {s.id for s in group.students}
        outside = [i for i in item_ids if i not in in_band]
        if outside:
            raise InvalidOperation(f"Items not in the {level} group: {', '.join(outside)}")
        wanted = set(item_ids)
        self.students = [s for s in group.students if s.id in wanted]

    # ── compose ──────────────────────────────────────────────

    def _require_phase(self, phase):
        if self.phase != phase:
            raise InvalidOperation(f"Bulk adjustment is in the {self.phase} phase")

    def toggle_criterion(self, criterion_id):
        self._require_phase(COMPOSE)
        if criterion_id not in _CRITERIA_BY_ID:
            raise InvalidOperation(f"Unknown reassessment criterion: {criterion_id}")
        if criterion_id in self.selected_criteria:
            self.selected_criteria.remove(criterion_id)
        else:
            self.selected_criteria.append(criterion_id)

        labels = [_CRITERIA_BY_ID[c]["label"] for c in self.selected_criteria]
        self.justification = f"Bulk grade adjusted based on: {', '.join(labels)}" if labels else ''

    def set_manual_adjustment(self, delta):
        self._require_phase(COMPOSE)
        low, high = MANUAL_ADJUSTMENT_RANGE
        if not low <= delta <= high:
            raise InvalidOperation(f"Manual adjustment must be between {low} and {high}")
        self.manual_adjustment = delta

    def set_justification(self, text):
        self._require_phase(COMPOSE)
        self.justification = text or ''

    @property
    def total_delta(self):
        criteria = sum(_CRITERIA_BY_ID[c]["grade_adjustment"] for c in self.selected_criteria)
        return criteria + self.manual_adjustment

    def proceed(self):
        """Move to the preview phase; requires a justification and a selection."""
        self._require_phase(COMPOSE)
        if not self.justification.strip():
            raise JustificationRequired("Please provide a justification")
        if not self.students:
            raise InvalidOperation("No students selected")

        delta = self.total_delta
        self._rows = []
        for item in self.students:
            current = item_grade(item, self.floor_policy)
            self._rows.append({
                "item_id": item.id,
                "student_id": item.student_id,
                "student_name": item.student_name,
                "current_grade": current,
                "new_grade": clamp_grade(current + delta),
                "adjustment": delta,
            })
        self.phase = PREVIEW
        return self.preview()

    # ── preview ──────────────────────────────────────────────

    def preview(self):
        self._require_phase(PREVIEW)
        return [dict(row) for row in self._rows]

    def back(self):
        """Return to compose without side effects."""
        self._require_phase(PREVIEW)
        self._rows = []
        self.phase = COMPOSE

    # ── commit ───────────────────────────────────────────────

    def commit(self, gradebook) -> StageOutcome:
        """Apply each previewed row: queue override first, then the gradebook save.

        A row whose item changed since preview (re-analyzed, linked, removed
        or reassigned) is rejected before anything is written. A failed save
        puts the previous override back.
        """
        self._require_phase(PREVIEW)
        outcome = StageOutcome()
        by_id = {item.id: item for item in self.students}

        for row in self._rows:
            item_id, student_id = row["item_id"], row["student_id"]
            if not student_id:
                outcome.failure(item_id, "No student assigned")
                continue

            result = by_id[item_id].result
            try:
                previous = self.queue.set_grade_override(
                    item_id, row["new_grade"], self.justification,
                    student_id=student_id, result=result)
            except ScanGradeError as e:
                logger.warning("Skipping grade override for %s: %s", student_id, e)
                outcome.failure(item_id, e, student_id)
                continue

            try:
                gradebook.save_grade(
                    student_id,
                    row["new_grade"],
                    self.justification,
                    raw_scores_for(result),
                    result.nys_standard,
                )
            except Exception as e:
                logger.error("Grade override failed for %s: %s", student_id, e)
                self.queue.restore_grade_override(item_id, previous)
                outcome.failure(item_id, e, student_id)
                continue

            outcome.success(item_id)
            audit_log("BULK_GRADE_OVERRIDE", f"student={student_id} grade={row['new_grade']} delta={row['adjustment']:+}")

        self.phase = COMMITTED
        return outcome

    def to_dict(self):
        return {
            "level": self.level,
            "phase": self.phase,
            "selected_criteria": list(self.selected_criteria),
            "manual_adjustment": self.manual_adjustment,
            "justification": self.justification,
            "total_delta": self.total_delta,
            "students": [s.id for s in self.students],
            "preview": [dict(r) for r in self._rows],
        }
