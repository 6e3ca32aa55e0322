"""
Batch Scan Queue
================
The owned collection of scanned submissions and their lifecycle.

Every mutation goes through a BatchQueue method (or runs while holding
``queue.lock``) so the invariants hold for every reader:

- no two primary items share a non-null student_id
- continuation links form a forest of depth 1 (no chains, no cycles)

Readers get deep copies taken under the lock, never live items.
"""
import copy
import threading
import uuid
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import DuplicateAssignment, InvalidOperation, ItemNotFound


class ItemStatus:
    PENDING = 'pending'
    IDENTIFYING = 'identifying'
    ANALYZING = 'analyzing'
    COMPLETED = 'completed'
    FAILED = 'failed'


class PageType:
    PRIMARY = 'primary'
    CONTINUATION = 'continuation'


# ══════════════════════════════════════════════════════════════
# SERVICE RESULT MODELS
# ══════════════════════════════════════════════════════════════

class _ServiceModel(BaseModel):
    # Services answer in camelCase; python code uses snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Identification(_ServiceModel):
    matched_via_code: bool = False
    raw_handwritten_name: Optional[str] = None
    confidence: str = 'low'  # "low", "medium", "high"
    parsed_code: Optional[str] = None
    question_id: Optional[str] = None


class RubricScore(_ServiceModel):
    criterion: str
    score: float
    max_score: float
    feedback: str = ''


class TotalScore(_ServiceModel):
    earned: float = 0
    possible: float = 0
    percentage: float = 0


class AnalysisResult(_ServiceModel):
    ocr_text: str = ''
    problem_identified: str = ''
    approach_analysis: str = ''
    rubric_scores: List[RubricScore] = Field(default_factory=list)
    misconceptions: List[str] = Field(default_factory=list)
    total_score: TotalScore = Field(default_factory=TotalScore)
    grade: Optional[float] = None
    grade_justification: Optional[str] = None
    feedback: str = ''
    nys_standard: Optional[str] = None
    regents_score: Optional[int] = Field(default=None, ge=0, le=4)
    regents_score_justification: Optional[str] = None


# ══════════════════════════════════════════════════════════════
# QUEUE ITEM
# ══════════════════════════════════════════════════════════════

class QueueItem:
    """One scanned image awaiting or having completed processing."""

    def __init__(self, item_id: str, image_ref: str):
        self.id = item_id
        self.image_ref = image_ref
        self.status = ItemStatus.PENDING
        self.student_id = None
        self.student_name = None
        self.auto_assigned = False
        self.identification = None
        self.question_id = None
        self.page_type = PageType.PRIMARY
        self.continuation_of = None
        self.continuation_pages = []
        self.result = None
        self.error = None
        self.notes = ''
        self.grade_override = None
        self.override_justification = None

    @property
    def is_primary(self):
        return self.page_type == PageType.PRIMARY

    @property
    def is_continuation(self):
        return self.page_type == PageType.CONTINUATION

    def to_dict(self):
        return {
            "id": self.id,
            "image_ref": self.image_ref,
            "status": self.status,
            "student_id": self.student_id,
            "student_name": self.student_name,
            "auto_assigned": self.auto_assigned,
            "identification": self.identification.model_dump() if self.identification else None,
            "question_id": self.question_id,
            "page_type": self.page_type,
            "continuation_of": self.continuation_of,
            "continuation_pages": list(self.continuation_pages),
            "result": self.result.model_dump() if self.result else None,
            "error": self.error,
            "notes": self.notes,
            "grade_override": self.grade_override,
            "override_justification": self.override_justification,
        }

    def __repr__(self):
        return f"<QueueItem {self.id} {self.page_type} {self.status} student={self.student_id}>"


# ══════════════════════════════════════════════════════════════
# QUEUE
# ══════════════════════════════════════════════════════════════

class BatchQueue:
    """Arena of queue items keyed by id, kept in enqueue order."""

    def __init__(self):
        self.lock = threading.RLock()
        self._items = {}
        self._order = []

    def __len__(self):
        with self.lock:
            return len(self._order)

    def __contains__(self, item_id):
        with self.lock:
            return item_id in self._items

    # ── lookups ──────────────────────────────────────────────

    def live_item(self, item_id) -> QueueItem:
        """Return the stored item itself. Caller must hold ``self.lock``."""
        item = self._items.get(item_id)
        if item is None:
            raise ItemNotFound(item_id)
        return item

    def get(self, item_id) -> QueueItem:
        with self.lock:
            return copy.deepcopy(self.live_item(item_id))

    def list_items(self) -> List[QueueItem]:
        """Consistent snapshot of every item in queue order."""
        with self.lock:
            return [copy.deepcopy(self._items[i]) for i in self._order]

    snapshot = list_items

    def ids(self) -> List[str]:
        with self.lock:
            return list(self._order)

    def primary_holder(self, student_id, exclude=None) -> Optional[str]:
        """Id of the primary item holding ``student_id``, if any."""
        if not student_id:
            return None
        with self.lock:
            for item_id in self._order:
                item = self._items[item_id]
                if item_id != exclude and item.is_primary and item.student_id == student_id:
                    return item_id
        return None

    def images_for(self, item_id) -> List[str]:
        """Images graded together for an item: itself plus linked pages."""
        with self.lock:
            item = self.live_item(item_id)
            images = [item.image_ref]
            for page_id in item.continuation_pages:
                images.append(self.live_item(page_id).image_ref)
            return images

    # ── enqueue / remove ─────────────────────────────────────

    def enqueue(self, image_ref, student_id=None, student_name=None) -> str:
        if not image_ref:
            raise InvalidOperation("An image reference is required")
        with self.lock:
            holder = self.primary_holder(student_id)
            if holder:
                raise DuplicateAssignment(student_id, holder)
            item_id = uuid.uuid4().hex
            item = QueueItem(item_id, image_ref)
            item.student_id = student_id
            item.student_name = student_name if student_id else None
            self._items[item_id] = item
            self._order.append(item_id)
            return item_id

    def remove(self, item_id):
        with self.lock:
            item = self.live_item(item_id)
            if item.status != ItemStatus.PENDING:
                raise InvalidOperation(f"Only pending items can be removed (item is {item.status})")
            if item.continuation_pages:
                raise InvalidOperation("Unlink continuation pages before removing this page")
            if item.continuation_of:
                parent = self._items.get(item.continuation_of)
                if parent is not None and item_id in parent.continuation_pages:
                    parent.continuation_pages.remove(item_id)
            del self._items[item_id]
            self._order.remove(item_id)

    def clear(self):
        with self.lock:
            self._items.clear()
            self._order.clear()

    def set_notes(self, item_id, text):
        with self.lock:
            self.live_item(item_id).notes = text or ''

    # ── student assignment ───────────────────────────────────

    def assign_student(self, item_id, student_id, student_name, auto=False):
        """Assign a student to a primary item.

        Raises DuplicateAssignment when another primary item holds the
        student. Manual assignment always clears ``auto_assigned``.
        """
        with self.lock:
            item = self.live_item(item_id)
            if item.is_continuation:
                raise InvalidOperation("Continuation pages take the student of their primary page")
            holder = self.primary_holder(student_id, exclude=item_id)
            if holder:
                raise DuplicateAssignment(student_id, holder)
            item.student_id = student_id
            item.student_name = student_name
            item.auto_assigned = bool(auto)

    def clear_student(self, item_id):
        with self.lock:
            item = self.live_item(item_id)
            item.student_id = None
            item.student_name = None
            item.auto_assigned = False

    def swap_students(self, first_id, second_id):
        """Exchange the student assignments of two primary items."""
        with self.lock:
            first = self.live_item(first_id)
            second = self.live_item(second_id)
            if first.is_continuation or second.is_continuation:
                raise InvalidOperation("Only primary pages can swap students")
            first.student_id, second.student_id = second.student_id, first.student_id
            first.student_name, second.student_name = second.student_name, first.student_name
            first.auto_assigned = False
            second.auto_assigned = False

    # ── identification transitions ───────────────────────────

    def begin_identifying(self, item_id) -> bool:
        with self.lock:
            item = self.live_item(item_id)
            if item.status != ItemStatus.PENDING or item.is_continuation:
                return False
            item.status = ItemStatus.IDENTIFYING
            return True

    def finish_identifying(self, item_id, identification=None):
        """Return an item to pending with this pass's identification data.

        ``identification=None`` (the service call failed) clears whatever an
        earlier pass recorded.
        """
        with self.lock:
            item = self._items.get(item_id)
            if item is None:
                return
            if item.status == ItemStatus.IDENTIFYING:
                item.status = ItemStatus.PENDING
            item.identification = identification
            item.question_id = identification.question_id if identification is not None else None

    # ── analysis transitions ─────────────────────────────────

    def begin_analyzing(self, item_id) -> bool:
        with self.lock:
            item = self.live_item(item_id)
            if item.is_continuation or item.status in (ItemStatus.IDENTIFYING, ItemStatus.ANALYZING):
                return False
            item.status = ItemStatus.ANALYZING
            return True

    def complete(self, item_id, result: AnalysisResult) -> bool:
        """Attach a result. Returns False if the item stopped being gradable mid-call."""
        with self.lock:
            item = self._items.get(item_id)
            if item is None or item.is_continuation or item.status != ItemStatus.ANALYZING:
                return False
            item.result = result
            item.error = None
            item.grade_override = None
            item.override_justification = None
            item.status = ItemStatus.COMPLETED
            return True

    def fail(self, item_id, error) -> bool:
        with self.lock:
            item = self._items.get(item_id)
            if item is None or item.is_continuation or item.status != ItemStatus.ANALYZING:
                return False
            item.result = None
            item.error = str(error) or 'Analysis failed'
            item.grade_override = None
            item.override_justification = None
            item.status = ItemStatus.FAILED
            return True

    # ── overrides ────────────────────────────────────────────

    def set_grade_override(self, item_id, grade, justification, student_id=None, result=None):
        """Override a completed primary's grade; returns the previous override.

        With ``student_id`` the item must still belong to that student, and
        with ``result`` it must still carry that analysis result.
        """
        with self.lock:
            item = self.live_item(item_id)
            if item.is_continuation or item.status != ItemStatus.COMPLETED:
                raise InvalidOperation("Only completed primary submissions can be overridden")
            if student_id is not None and item.student_id != student_id:
                raise InvalidOperation(f"Submission is no longer assigned to {student_id}")
            if result is not None and item.result != result:
                raise InvalidOperation("Submission was re-analyzed since the preview")
            previous = (item.grade_override, item.override_justification)
            item.grade_override = max(0, min(100, grade))
            item.override_justification = justification
            return previous

    def restore_grade_override(self, item_id, previous):
        """Put back an override returned by set_grade_override()."""
        with self.lock:
            item = self._items.get(item_id)
            if item is None or item.status != ItemStatus.COMPLETED:
                return
            item.grade_override, item.override_justification = previous
