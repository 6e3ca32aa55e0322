"""
Batch outcome accounting shared by every per-item batch operation.
"""


class StageOutcome:
    """Successes and failures of one pass over a batch.

    Failures are never dropped: each carries the item id, the student (if
    known) and the error message.
    """

    def __init__(self):
        self.succeeded = []
        self.failed = []
        self.skipped = []
        self.stopped = False

    def success(self, item_id):
        self.succeeded.append(item_id)

    def failure(self, item_id, error, student_id=None):
        self.failed.append({"item_id": item_id, "student_id": student_id, "error": str(error)})

    def skip(self, item_id):
        self.skipped.append(item_id)

    @property
    def success_count(self):
        return len(self.succeeded)

    @property
    def failure_count(self):
        return len(self.failed)

    def to_dict(self):
        return {
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "succeeded": list(self.succeeded),
            "failed": list(self.failed),
            "skipped": list(self.skipped),
            "stopped": self.stopped,
        }
