"""
Analysis Stage
==============
Sends each submission to the analysis service, one at a time in queue order.

A primary page with linked continuation pages is sent as one submission
(all images in one call). Continuation pages are never analyzed on their
own. A failed item is recorded and the stage moves on.
"""
import logging
import threading

from ..batch_queue import AnalysisResult, ItemStatus
from ..errors import InvalidOperation
from .outcome import StageOutcome

logger = logging.getLogger(__name__)


class AnalysisStage:
    def __init__(self, queue, service, progress=None):
        self.queue = queue
        self.service = service
        self.progress = progress or (lambda message: None)
        self.stop_event = threading.Event()
        self.current_index = -1
        self.cursor = 0
        self._targets = []

    def stop(self):
        self.stop_event.set()

    def clear_stop(self):
        """Re-arm after a stop. Runs never clear a pending stop themselves."""
        self.stop_event.clear()

    @property
    def total(self):
        return len(self._targets)

    @property
    def has_remaining(self):
        return self.cursor < len(self._targets)

    def _select(self, item_ids=None, rerun=False):
        wanted = set(item_ids) if item_ids is not None else None
        statuses = (ItemStatus.PENDING, ItemStatus.COMPLETED, ItemStatus.FAILED) if rerun else (ItemStatus.PENDING,)
        return [
            item.id for item in self.queue.list_items()
            if item.is_primary
            and item.status in statuses
            and (wanted is None or item.id in wanted)
        ]

    def run(self, item_ids=None, rerun=False) -> StageOutcome:
        """Start a fresh pass over every item still to be graded.

        ``rerun`` also re-submits completed and failed items, replacing their
        previous result or error.
        """
        self._targets = self._select(item_ids, rerun)
        self.cursor = 0
        return self._process()

    def resume(self) -> StageOutcome:
        """Continue a stopped pass from where it left off."""
        return self._process()

    def analyze_item(self, item_id) -> StageOutcome:
        """Grade (or re-grade) a single primary submission."""
        item = self.queue.get(item_id)
        if item.is_continuation:
            raise InvalidOperation("Continuation pages are graded with their primary page")
        outcome = StageOutcome()
        self._analyze_one(item_id, outcome, "[1/1]")
        return outcome

    def _process(self):
        outcome = StageOutcome()
        total = len(self._targets)

        while self.cursor < total:
            if self.stop_event.is_set():
                outcome.stopped = True
                self.progress(f"Stopped - {self.cursor}/{total} submissions analyzed")
                break
            self.current_index = self.cursor
            self._analyze_one(self._targets[self.cursor], outcome, f"[{self.cursor + 1}/{total}]")
            self.cursor += 1

        self.current_index = -1
        return outcome

    def _analyze_one(self, item_id, outcome, label):
        if item_id not in self.queue or not self.queue.begin_analyzing(item_id):
            outcome.skip(item_id)
            return

        images = self.queue.images_for(item_id)
        student_id = self.queue.get(item_id).student_id
        try:
            result = self.service.analyze(images)
            if not isinstance(result, AnalysisResult):
                result = AnalysisResult.model_validate(result)
        except Exception as e:
            logger.warning("Analysis failed for %s: %s", item_id, e)
            self.queue.fail(item_id, e)
            outcome.failure(item_id, e, student_id)
            self.progress(f"{label} ❌ {e}")
            return

        if self.queue.complete(item_id, result):
            outcome.success(item_id)
            pages = f" ({len(images)} pages)" if len(images) > 1 else ""
            self.progress(f"{label} ✓ {result.total_score.percentage:.0f}%{pages}")
        else:
            # Linked or removed while the call was in flight
            outcome.skip(item_id)
            self.progress(f"{label} Result discarded - page changed during analysis")
