"""
Scan Grader Errors
==================
Exceptions raised by queue, linking and grading operations.

Operations that change the queue validate first and raise one of these
before anything is mutated, so a caught error always means "nothing changed".
"""


class ScanGradeError(Exception):
    """Base class for all scan grader errors."""


class ServiceUnavailable(ScanGradeError):
    """An identification, analysis, gradebook or push call failed."""


class InvalidOperation(ScanGradeError):
    """The requested operation is not allowed in the current state."""


class JustificationRequired(InvalidOperation):
    """A bulk adjustment cannot advance without a justification."""


class ItemNotFound(ScanGradeError, LookupError):
    """No queue item with the given id."""

    def __init__(self, item_id):
        super().__init__(f"Queue item not found: {item_id}")
        self.item_id = item_id


class DuplicateAssignment(ScanGradeError):
    """The student is already assigned to another primary item."""

    def __init__(self, student_id, holder_id):
        super().__init__(f"Student {student_id} is already assigned to item {holder_id}")
        self.student_id = student_id
        self.holder_id = holder_id


class InvalidLink(ScanGradeError):
    """A continuation link would break the primary/continuation forest."""


class NotLinked(ScanGradeError):
    """The item is not a continuation page."""
