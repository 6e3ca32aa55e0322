"""
Batch Scan Session
==================
Owns one batch: the queue, the roster, the external services and the
background thread running the current stage.

Only one stage runs at a time. Identification and analysis are separate
passes; starting one while the other is running is refused. stop() is
honoured at the next item boundary, never mid-call.
"""
import logging
import threading
from datetime import datetime

from .batch_queue import BatchQueue
from .errors import InvalidOperation
from .roster import Roster
from .services import linking
from .services.aggregation import batch_summary, differentiation_groups, group_for_level
from .services.analysis_stage import AnalysisStage
from .services.bulk_adjust import BulkAdjustment
from .services.gradebook import apply_recalculation, preview_recalculation, save_batch_to_gradebook
from .services.identification_stage import IdentificationStage
from .services.remediation import push_group

logger = logging.getLogger(__name__)


class BatchSession:
    def __init__(self, identification_service=None, analysis_service=None, roster=None,
                 floor_provider=None, gradebook=None, push_service=None, queue=None):
        self.queue = queue or BatchQueue()
        self.roster = roster or Roster()
        self.identification_service = identification_service
        self.analysis_service = analysis_service
        self.floor_provider = floor_provider
        self.gradebook = gradebook
        self.push_service = push_service
        self.saved_students = set()
        self.pending_adjustment = None
        self.pending_recalculation = None

        self.analysis_stage = AnalysisStage(self.queue, analysis_service, progress=self._log)
        self._active_stage = None
        self._thread = None
        self._state_lock = threading.Lock()
        self.state = {
            "is_identifying": False,
            "is_processing": False,
            "stop_requested": False,
            "log": [],
            "complete": False,
            "error": None,
            "last_outcome": None,
            "started_at": None,
        }

    # ══════════════════════════════════════════════════════════
    # STATE
    # ══════════════════════════════════════════════════════════

    def _log(self, message):
        self.state["log"].append(message)

    @property
    def is_running(self):
        return self.state["is_identifying"] or self.state["is_processing"]

    def floor_policy(self):
        if self.floor_provider is None:
            return None
        return self.floor_provider.get_floors()

    def status(self):
        stage = self._active_stage
        return {
            "is_identifying": self.state["is_identifying"],
            "is_processing": self.state["is_processing"],
            "stop_requested": self.state["stop_requested"],
            "current_index": stage.current_index if stage else -1,
            "cursor": self.analysis_stage.cursor,
            "total": self.analysis_stage.total,
            "can_resume": self.analysis_stage.has_remaining and not self.is_running,
            "complete": self.state["complete"],
            "error": self.state["error"],
            "log": list(self.state["log"]),
            "last_outcome": self.state["last_outcome"],
            "items": len(self.queue),
        }

    # ══════════════════════════════════════════════════════════
    # STAGE EXECUTION
    # ══════════════════════════════════════════════════════════

    def _start(self, flag, stage, work, title, background):
        with self._state_lock:
            if self.is_running:
                raise InvalidOperation("Another processing stage is already in progress")
            self.state.update({
                flag: True,
                "stop_requested": False,
                "complete": False,
                "error": None,
                "log": [title],
                "started_at": datetime.now().isoformat(),
            })
            stage.clear_stop()
            self._active_stage = stage

        def target():
            try:
                outcome = work()
                self.state["last_outcome"] = outcome.to_dict()
                self._log("")
                self._log(f"{outcome.success_count} succeeded, {outcome.failure_count} failed")
                return outcome
            except Exception as e:
                logger.exception("%s failed", title)
                self.state["error"] = str(e)
                self._log(f"Error: {e}")
                raise
            finally:
                self.state["complete"] = True
                self.state[flag] = False
                self.state["stop_requested"] = False
                self._active_stage = None

        if not background:
            return target()

        self._thread = threading.Thread(target=target, daemon=True)
        self._thread.start()
        return None

    def start_identification(self, background=True):
        if self.identification_service is None:
            raise InvalidOperation("No identification service configured")
        if len(self.roster) == 0:
            raise InvalidOperation("Roster is empty; nothing to match scans against")
        stage = IdentificationStage(self.queue, self.identification_service, self.roster, progress=self._log)
        return self._start("is_identifying", stage, stage.run, "Identifying students...", background)

    def start_analysis(self, item_ids=None, rerun=False, background=True):
        if self.analysis_service is None:
            raise InvalidOperation("No analysis service configured")
        stage = self.analysis_stage
        return self._start("is_processing", stage, lambda: stage.run(item_ids, rerun),
                           "Analyzing submissions...", background)

    def resume_analysis(self, background=True):
        stage = self.analysis_stage
        if not stage.has_remaining:
            raise InvalidOperation("Nothing to resume")
        return self._start("is_processing", stage, stage.resume, "Resuming analysis...", background)

    def analyze_item(self, item_id):
        """Re-grade one submission synchronously."""
        stage = self.analysis_stage
        return self._start("is_processing", stage, lambda: stage.analyze_item(item_id),
                           "Re-analyzing submission...", False)

    def stop(self):
        stage = self._active_stage
        if stage is None:
            return False
        self.state["stop_requested"] = True
        self._log("Stop requested... finishing current scan...")
        stage.stop()
        return True

    def wait(self, timeout=None):
        if self._thread is not None:
            self._thread.join(timeout)

    # ══════════════════════════════════════════════════════════
    # QUEUE OPERATIONS
    # ══════════════════════════════════════════════════════════

    def link(self, continuation_id, primary_id):
        linking.link(self.queue, continuation_id, primary_id)

    def unlink(self, continuation_id):
        linking.unlink(self.queue, continuation_id)

    def clear(self):
        if self.is_running:
            raise InvalidOperation("Cannot clear the queue while processing")
        self.queue.clear()
        self.saved_students.clear()
        self.pending_adjustment = None
        self.pending_recalculation = None
        self.analysis_stage = AnalysisStage(self.queue, self.analysis_service, progress=self._log)
        self.state["log"] = []
        self.state["last_outcome"] = None

    # ══════════════════════════════════════════════════════════
    # REPORTING AND FINALIZATION
    # ══════════════════════════════════════════════════════════

    def summary(self):
        return batch_summary(self.queue.list_items(), self.floor_policy())

    def groups(self):
        return differentiation_groups(self.queue.list_items(), self.floor_policy())

    def bulk_adjustment(self, level, item_ids):
        """Start composing a bulk adjustment; replaces any unfinished one."""
        self.pending_adjustment = BulkAdjustment(self.queue, level, item_ids, self.floor_policy())
        return self.pending_adjustment

    def commit_bulk_adjustment(self):
        if self.pending_adjustment is None:
            raise InvalidOperation("No bulk adjustment in progress")
        if self.gradebook is None:
            raise InvalidOperation("No gradebook configured")
        outcome = self.pending_adjustment.commit(self.gradebook)
        self.pending_adjustment = None
        return outcome

    def save_to_gradebook(self):
        if self.gradebook is None:
            raise InvalidOperation("No gradebook configured")
        return save_batch_to_gradebook(self.queue, self.gradebook, self.floor_policy(), self.saved_students)

    def recalculation_preview(self, student_ids=None):
        """Recompute stored grades from their raw scores; nothing is written yet."""
        if self.gradebook is None:
            raise InvalidOperation("No gradebook configured")
        self.pending_recalculation = preview_recalculation(self.gradebook, student_ids)
        return self.pending_recalculation

    def apply_recalculation(self, selected=None):
        """Write the previewed changes, optionally only the (student_id, index) pairs in ``selected``."""
        if self.pending_recalculation is None:
            raise InvalidOperation("No recalculation preview to apply")
        rows = self.pending_recalculation
        if selected is not None:
            try:
                wanted = {(str(sid), int(index)) for sid, index in selected}
            except (TypeError, ValueError):
                raise InvalidOperation("selected must be a list of [student_id, index] pairs")
            rows = [r for r in rows if (str(r["student_id"]), r["index"]) in wanted]
        outcome = apply_recalculation(self.gradebook, rows)
        self.pending_recalculation = None
        return outcome

    def push_group(self, level, topic=None):
        if self.push_service is None:
            raise InvalidOperation("No remediation push service configured")
        group = group_for_level(self.queue.list_items(), level, self.floor_policy())
        if not group.students:
            raise InvalidOperation(f"No students in the {level} group")
        return push_group(group, self.push_service, topic)
