"""
FERPA Compliance - Audit Logging
================================
Records every grade save, override and remediation push. Entries name the
action and ids only; no student work or names are written here.
"""
import os
import logging
from datetime import datetime

from . import config as _config

logger = logging.getLogger(__name__)


def audit_log(action: str, details: str = "", user: str = "teacher"):
    """Append one audit line: timestamp | user | action | details."""
    path = str(_config.AUDIT_LOG_FILE)
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        timestamp = datetime.now().isoformat()
        with open(path, 'a') as f:
            f.write(f"{timestamp} | {user} | {action} | {details}\n")
    except OSError as e:
        logger.error("Audit log error: %s", e)


def get_audit_logs(limit: int = 100):
    """Retrieve recent audit log entries, newest first."""
    path = str(_config.AUDIT_LOG_FILE)
    if not os.path.exists(path):
        return []

    with open(path, 'r') as f:
        lines = f.readlines()
    recent = lines[-limit:] if len(lines) > limit else lines

    logs = []
    for line in recent:
        parts = line.strip().split(' | ')
        if len(parts) >= 4:
            logs.append({
                'timestamp': parts[0],
                'user': parts[1],
                'action': parts[2],
                'details': parts[3],
            })
    return logs[::-1]
