"""
Scan grading API routes.
Handles the batch queue, the identification and analysis stages, reports,
bulk adjustment and finalization.
"""
import logging

from flask import Blueprint, request, jsonify

from ..errors import DuplicateAssignment, InvalidOperation, ItemNotFound, ScanGradeError
from ..roster import Roster

logger = logging.getLogger(__name__)

scan_bp = Blueprint('scan', __name__)

# Set by create_app() during initialization
session = None


def init_scan_routes(session_ref):
    """Initialize scan routes with the batch session from the main app."""
    global session
    session = session_ref


@scan_bp.errorhandler(ScanGradeError)
def handle_scan_error(e):
    status = 400
    if isinstance(e, ItemNotFound):
        status = 404
    elif isinstance(e, DuplicateAssignment):
        status = 409
    logger.info("%s %s rejected: %s", request.method, request.path, e)
    return jsonify({"error": str(e), "type": type(e).__name__}), status


@scan_bp.before_request
def require_session():
    if session is None:
        return jsonify({"error": "Scan session not initialized"}), 500


# ══════════════════════════════════════════════════════════════
# QUEUE
# ══════════════════════════════════════════════════════════════

@scan_bp.route('/api/scan/roster', methods=['POST'])
def load_roster():
    """Replace the roster used for identification."""
    data = request.json or {}
    session.roster = Roster.from_dicts(data.get('students', []))
    return jsonify({"status": "loaded", "students": len(session.roster)})


@scan_bp.route('/api/scan/queue', methods=['GET'])
def list_queue():
    return jsonify({"items": [item.to_dict() for item in session.queue.list_items()]})


@scan_bp.route('/api/scan/queue', methods=['POST'])
def enqueue_scans():
    """Add scans. Body: {"images": [{"image_ref", "student_id"?, "student_name"?}]}"""
    data = request.json or {}
    added = []
    for image in data.get('images', []):
        added.append(session.queue.enqueue(
            image.get('image_ref'),
            image.get('student_id'),
            image.get('student_name'),
        ))
    return jsonify({"status": "queued", "item_ids": added})


@scan_bp.route('/api/scan/queue', methods=['DELETE'])
def clear_queue():
    session.clear()
    return jsonify({"status": "cleared"})


@scan_bp.route('/api/scan/queue/<item_id>', methods=['DELETE'])
def remove_item(item_id):
    session.queue.remove(item_id)
    return jsonify({"status": "removed", "item_id": item_id})


@scan_bp.route('/api/scan/queue/<item_id>/notes', methods=['POST'])
def set_notes(item_id):
    data = request.json or {}
    session.queue.set_notes(item_id, data.get('notes', ''))
    return jsonify({"status": "saved"})


@scan_bp.route('/api/scan/queue/<item_id>/student', methods=['POST'])
def assign_student(item_id):
    """Manually assign a student; an empty student_id clears the assignment."""
    data = request.json or {}
    student_id = data.get('student_id')
    if not student_id:
        session.queue.clear_student(item_id)
        return jsonify({"status": "cleared"})

    student_name = data.get('student_name')
    if not student_name:
        student = session.roster.get(student_id)
        student_name = student.display_name if student else student_id
    session.queue.assign_student(item_id, student_id, student_name)
    return jsonify({"status": "assigned", "item": session.queue.get(item_id).to_dict()})


@scan_bp.route('/api/scan/swap', methods=['POST'])
def swap_students():
    data = request.json or {}
    session.queue.swap_students(data.get('first_id'), data.get('second_id'))
    return jsonify({"status": "swapped"})


@scan_bp.route('/api/scan/queue/<item_id>/link', methods=['POST'])
def link_page(item_id):
    """Link this page as a continuation of {"primary_id": ...}."""
    data = request.json or {}
    session.link(item_id, data.get('primary_id'))
    return jsonify({"status": "linked", "item": session.queue.get(item_id).to_dict()})


@scan_bp.route('/api/scan/queue/<item_id>/unlink', methods=['POST'])
def unlink_page(item_id):
    session.unlink(item_id)
    return jsonify({"status": "unlinked", "item": session.queue.get(item_id).to_dict()})


# ══════════════════════════════════════════════════════════════
# STAGES
# ══════════════════════════════════════════════════════════════

@scan_bp.route('/api/scan/identify', methods=['POST'])
def start_identification():
    session.start_identification()
    return jsonify({"status": "started"})


@scan_bp.route('/api/scan/analyze', methods=['POST'])
def start_analysis():
    """Body: {"item_ids"?: [...], "rerun"?: bool, "resume"?: bool}"""
    data = request.json or {}
    if data.get('resume'):
        session.resume_analysis()
    else:
        session.start_analysis(item_ids=data.get('item_ids'), rerun=bool(data.get('rerun')))
    return jsonify({"status": "started"})


@scan_bp.route('/api/scan/queue/<item_id>/analyze', methods=['POST'])
def analyze_item(item_id):
    outcome = session.analyze_item(item_id)
    return jsonify({"status": "done", "outcome": outcome.to_dict(), "item": session.queue.get(item_id).to_dict()})


@scan_bp.route('/api/scan/stop', methods=['POST'])
def stop_stage():
    stopped = session.stop()
    return jsonify({"stopped": stopped})


@scan_bp.route('/api/scan/status')
def get_status():
    return jsonify(session.status())


# ══════════════════════════════════════════════════════════════
# REPORTS
# ══════════════════════════════════════════════════════════════

@scan_bp.route('/api/scan/summary')
def get_summary():
    return jsonify(session.summary().to_dict())


@scan_bp.route('/api/scan/groups')
def get_groups():
    floor_policy = session.floor_policy()
    return jsonify({"groups": [g.to_dict(floor_policy) for g in session.groups()]})


# ══════════════════════════════════════════════════════════════
# BULK ADJUSTMENT AND FINALIZATION
# ══════════════════════════════════════════════════════════════

@scan_bp.route('/api/scan/groups/<level>/bulk-preview', methods=['POST'])
def bulk_preview(level):
    """Compose and preview a bulk adjustment; nothing is saved.

    Body: {"item_ids", "criteria"?, "manual_adjustment"?, "justification"?}
    """
    data = request.json or {}
    adjustment = session.bulk_adjustment(level, data.get('item_ids', []))
    for criterion_id in data.get('criteria', []):
        adjustment.toggle_criterion(criterion_id)
    try:
        manual_adjustment = int(data.get('manual_adjustment', 0))
    except (TypeError, ValueError):
        raise InvalidOperation("manual_adjustment must be a number")
    adjustment.set_manual_adjustment(manual_adjustment)
    if data.get('justification'):
        adjustment.set_justification(data['justification'])
    preview = adjustment.proceed()
    return jsonify({"preview": preview, "adjustment": adjustment.to_dict()})


@scan_bp.route('/api/scan/bulk-commit', methods=['POST'])
def bulk_commit():
    outcome = session.commit_bulk_adjustment()
    return jsonify(outcome.to_dict())


@scan_bp.route('/api/scan/save-to-gradebook', methods=['POST'])
def save_to_gradebook():
    outcome = session.save_to_gradebook()
    return jsonify(outcome.to_dict())


@scan_bp.route('/api/scan/gradebook/recalculate-preview', methods=['POST'])
def recalculate_preview():
    """Body: {"student_ids"?: [...]}; defaults to every student with history."""
    data = request.json or {}
    rows = session.recalculation_preview(data.get('student_ids'))
    return jsonify({"rows": rows, "changed": sum(1 for r in rows if r["changed"])})


@scan_bp.route('/api/scan/gradebook/recalculate', methods=['POST'])
def recalculate_apply():
    """Body: {"selected"?: [[student_id, index], ...]}; defaults to every previewed row."""
    data = request.json or {}
    outcome = session.apply_recalculation(data.get('selected'))
    return jsonify(outcome.to_dict())


@scan_bp.route('/api/scan/groups/<level>/push', methods=['POST'])
def push_group(level):
    data = request.json or {}
    outcome = session.push_group(level, data.get('topic'))
    return jsonify(outcome.to_dict())
