"""
Continuation Linking
====================
Merge extra pages into a primary submission so they are graded as one answer.

Both operations validate everything before touching the queue; a raised
InvalidLink/NotLinked leaves every item exactly as it was.
"""
import logging

from ..batch_queue import ItemStatus, PageType
from ..errors import InvalidLink, NotLinked

logger = logging.getLogger(__name__)


def link(queue, continuation_id, primary_id):
    """Attach ``continuation_id`` as an extra page of ``primary_id``."""
    if continuation_id == primary_id:
        raise InvalidLink("A page cannot be a continuation of itself")

    with queue.lock:
        child = queue.live_item(continuation_id)
        parent = queue.live_item(primary_id)

        if parent.is_continuation:
            raise InvalidLink("Target page is itself a continuation; link to its primary page instead")
        if child.continuation_of == primary_id:
            return
        if child.continuation_of is not None:
            raise InvalidLink(f"Page is already linked to {child.continuation_of}")
        if child.continuation_pages:
            raise InvalidLink("Page has continuation pages of its own; unlink them first")

        child.page_type = PageType.CONTINUATION
        child.continuation_of = primary_id
        child.status = ItemStatus.PENDING
        child.result = None
        child.error = None
        child.grade_override = None
        child.override_justification = None
        # The page is represented by its primary's student from now on
        child.student_id = None
        child.student_name = None
        child.auto_assigned = False
        parent.continuation_pages.append(continuation_id)

    logger.info("Linked page %s as continuation of %s", continuation_id, primary_id)


def unlink(queue, continuation_id):
    """Detach a continuation page so it can be processed on its own again."""
    with queue.lock:
        child = queue.live_item(continuation_id)
        if not child.is_continuation or child.continuation_of is None:
            raise NotLinked(f"Page {continuation_id} is not a continuation page")

        parent = queue.live_item(child.continuation_of)
        if continuation_id in parent.continuation_pages:
            parent.continuation_pages.remove(continuation_id)

        child.continuation_of = None
        child.page_type = PageType.PRIMARY
        child.status = ItemStatus.PENDING

    logger.info("Unlinked continuation page %s", continuation_id)
