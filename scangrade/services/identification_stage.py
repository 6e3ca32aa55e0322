"""
Identification Stage
====================
Walks the queue in order and auto-assigns students from printed codes or
handwritten names before any grading happens.

One identification call at a time, strictly in queue order: the first item
to claim a student keeps it (first-claim-wins), later matches for the same
student are left for manual assignment.
"""
import logging
import threading

from ..batch_queue import ItemStatus
from ..errors import DuplicateAssignment
from .outcome import StageOutcome

logger = logging.getLogger(__name__)

# Name matches below this confidence are never auto-assigned
NAME_MATCH_CONFIDENCE = ('medium', 'high')


def resolve_student(identification, roster):
    """Roster student an identification points at, or None.

    A code that resolves always wins over a handwritten name.
    """
    if identification is None or roster is None:
        return None
    if identification.parsed_code:
        student = roster.find_by_code(identification.parsed_code)
        if student is not None:
            return student
    if identification.raw_handwritten_name and identification.confidence in NAME_MATCH_CONFIDENCE:
        return roster.find_by_name(identification.raw_handwritten_name)
    return None


class IdentificationStage:
    def __init__(self, queue, service, roster, progress=None):
        self.queue = queue
        self.service = service
        self.roster = roster
        self.progress = progress or (lambda message: None)
        self.stop_event = threading.Event()
        self.current_index = -1

    def stop(self):
        self.stop_event.set()

    def clear_stop(self):
        """Re-arm after a stop. Runs never clear a pending stop themselves."""
        self.stop_event.clear()

    def _targets(self):
        return [
            item.id for item in self.queue.list_items()
            if item.is_primary and item.status == ItemStatus.PENDING and not item.student_id
        ]

    def run(self) -> StageOutcome:
        outcome = StageOutcome()
        targets = self._targets()
        total = len(targets)

        for index, item_id in enumerate(targets):
            if self.stop_event.is_set():
                outcome.stopped = True
                self.progress(f"Stopped - {index}/{total} scans identified")
                break

            self.current_index = index
            if item_id not in self.queue or not self.queue.begin_identifying(item_id):
                outcome.skip(item_id)
                continue

            image_ref = self.queue.get(item_id).image_ref
            try:
                identification = self.service.identify(image_ref)
            except Exception as e:
                logger.warning("Identification failed for %s: %s", item_id, e)
                self.queue.finish_identifying(item_id)
                outcome.failure(item_id, e)
                self.progress(f"[{index + 1}/{total}] ❌ Identification error: {e}")
                continue

            message = self._record(item_id, identification)
            outcome.success(item_id)
            self.progress(f"[{index + 1}/{total}] {message}")

        self.current_index = -1
        return outcome

    def _record(self, item_id, identification):
        student = resolve_student(identification, self.roster)

        with self.queue.lock:
            self.queue.finish_identifying(item_id, identification)
            item = self.queue.live_item(item_id)

            if student is None:
                return "No confident match - needs manual assignment"
            if item.is_continuation or item.student_id:
                # Linked or manually assigned while the call was in flight
                return f"Matched {student.display_name} but page was changed meanwhile"
            try:
                self.queue.assign_student(item_id, student.id, student.display_name, auto=True)
            except DuplicateAssignment as e:
                logger.info("Student %s already claimed by %s; %s left unassigned",
                            student.id, e.holder_id, item_id)
                return f"Matched {student.display_name} but already assigned to another scan"

        return f"✓ {student.display_name} ({identification.confidence} confidence)"
