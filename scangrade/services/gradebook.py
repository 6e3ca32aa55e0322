"""
Gradebook Persistence
=====================
Stores finalized grades as per-student grade history files.
FERPA Compliant: data stored locally, one JSON file per student.

save_grade() appends a row every time it is called. Calling it twice for
the same save action creates two history rows; the session keeps track of
which students were already saved so batch saves don't repeat them.

Stored rows keep their raw scores, so grades can later be recalculated
from them (preview_recalculation / apply_recalculation).
"""
import os
import json
import logging
from datetime import datetime

from ..audit import audit_log
from ..batch_queue import ItemStatus
from ..config import config
from ..errors import InvalidOperation, ServiceUnavailable
from .aggregation import round_half_up
from .grade_resolution import calculate_grade, item_grade
from .outcome import StageOutcome

logger = logging.getLogger(__name__)


class JsonGradebook:
    """Persistence service writing ``<history_dir>/<student_id>.json``."""

    def __init__(self, history_dir=None):
        self.history_dir = str(history_dir or config.grade_history_dir)

    def _history_path(self, student_id: str) -> str:
        os.makedirs(self.history_dir, exist_ok=True)
        safe_id = str(student_id).replace('/', '_').replace('\\', '_')
        return os.path.join(self.history_dir, f"{safe_id}.json")

    def load_history(self, student_id: str) -> dict:
        path = self._history_path(student_id)
        if os.path.exists(path):
            with open(path, 'r') as f:
                return json.load(f)
        return {"student_id": student_id, "grades": [], "last_updated": None}

    def _write_history(self, student_id, history):
        history["last_updated"] = datetime.now().isoformat()
        try:
            with open(self._history_path(student_id), 'w') as f:
                json.dump(history, f, indent=2)
        except OSError as e:
            raise ServiceUnavailable(f"Error saving grade history: {e}") from e

    def student_ids(self):
        """Students with a history file, sorted."""
        if not os.path.isdir(self.history_dir):
            return []
        ids = []
        for name in sorted(os.listdir(self.history_dir)):
            if name.endswith('.json'):
                with open(os.path.join(self.history_dir, name), 'r') as f:
                    ids.append(json.load(f).get("student_id", name[:-5]))
        return ids

    def save_grade(self, student_id, grade, justification, raw_scores, standard_code=None):
        if not student_id:
            raise ServiceUnavailable("Cannot save a grade without a student id")

        raw_scores = raw_scores or {}
        history = self.load_history(student_id)
        history["grades"].append({
            "date": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "grade": grade,
            "justification": justification,
            "raw_score_earned": raw_scores.get("earned"),
            "raw_score_possible": raw_scores.get("possible"),
            "regents_score": raw_scores.get("regents_score"),
            "standard_code": standard_code,
        })
        self._write_history(student_id, history)
        return True

    def update_grade(self, student_id, index, grade):
        """Replace the grade of one stored row, keeping the old value."""
        history = self.load_history(student_id)
        if not 0 <= index < len(history["grades"]):
            raise InvalidOperation(f"No grade #{index} in history for {student_id}")
        row = history["grades"][index]
        row["previous_grade"] = row.get("grade")
        row["grade"] = grade
        self._write_history(student_id, history)
        return True


def raw_scores_for(result):
    """Raw scores stored with a grade row."""
    scores = result.total_score.model_dump()
    scores["regents_score"] = result.regents_score
    return scores


def build_justification(item):
    """Gradebook justification: teacher override first, then the AI's reasoning."""
    parts = []
    if item.grade_override is not None and item.override_justification:
        parts.append(f"TEACHER OVERRIDE: {item.override_justification}.")
    reasoning = item.result.grade_justification or item.result.feedback
    if reasoning:
        parts.append(reasoning)
    return " ".join(parts)


def save_batch_to_gradebook(queue, gradebook, floor_policy=None, already_saved=None) -> StageOutcome:
    """Save every graded primary submission with a student to the gradebook.

    Students in ``already_saved`` are skipped; successfully saved students
    are added to it. One failed save never stops the others.
    """
    already_saved = already_saved if already_saved is not None else set()
    outcome = StageOutcome()

    for item in queue.list_items():
        if not item.is_primary or item.status != ItemStatus.COMPLETED or item.result is None:
            continue
        if not item.student_id:
            outcome.skip(item.id)
            continue
        if item.student_id in already_saved:
            outcome.skip(item.id)
            continue

        grade = item_grade(item, floor_policy)
        try:
            gradebook.save_grade(
                item.student_id,
                grade,
                build_justification(item),
                raw_scores_for(item.result),
                item.result.nys_standard,
            )
        except Exception as e:
            logger.error("Error saving grade for %s: %s", item.student_name, e)
            outcome.failure(item.id, e, item.student_id)
            continue

        already_saved.add(item.student_id)
        outcome.success(item.id)
        audit_log("SAVE_GRADE", f"student={item.student_id} grade={grade}")

    return outcome


# ══════════════════════════════════════════════════════════════
# GRADE RECALCULATION
# ══════════════════════════════════════════════════════════════

def recalculated_grade(record):
    """Grade for a stored row, recomputed from its raw and Regents scores."""
    earned = record.get("raw_score_earned") or 0
    possible = record.get("raw_score_possible") or 0
    regents = record.get("regents_score")

    has_work = earned > 0 or (regents or 0) > 0
    percentage = round_half_up(earned / possible * 100) if possible > 0 else 0
    return calculate_grade(percentage, has_work, regents)


def preview_recalculation(gradebook, student_ids=None):
    """One row per stored grade with its old and recalculated value. Nothing is written."""
    rows = []
    for student_id in (student_ids if student_ids is not None else gradebook.student_ids()):
        history = gradebook.load_history(student_id)
        for index, record in enumerate(history["grades"]):
            new_grade = recalculated_grade(record)
            rows.append({
                "student_id": student_id,
                "index": index,
                "date": record.get("date"),
                "old_grade": record.get("grade"),
                "new_grade": new_grade,
                "changed": record.get("grade") != new_grade,
            })
    return rows


def apply_recalculation(gradebook, rows) -> StageOutcome:
    """Write the changed rows of a preview; each row succeeds or fails on its own."""
    outcome = StageOutcome()
    for row in rows:
        row_id = f"{row['student_id']}#{row['index']}"
        if not row["changed"]:
            outcome.skip(row_id)
            continue
        try:
            gradebook.update_grade(row["student_id"], row["index"], row["new_grade"])
        except Exception as e:
            logger.error("Recalculation failed for %s: %s", row_id, e)
            outcome.failure(row_id, e, row["student_id"])
            continue

        outcome.success(row_id)
        audit_log("RECALCULATE_GRADE",
                  f"student={row['student_id']} grade={row['old_grade']}->{row['new_grade']}")
    return outcome
