"""
Remediation Push
================
Sends differentiated follow-up work to the student practice app, one push
per student per group.
"""
import logging

import requests

from ..audit import audit_log
from ..config import config
from ..errors import ServiceUnavailable
from .outcome import StageOutcome

logger = logging.getLogger(__name__)

DIFFICULTY_BY_LEVEL = {"struggling": "A", "developing": "C", "proficient": "E"}


class HttpRemediationPush:
    """Remediation-push service posting JSON to the configured endpoint."""

    def __init__(self, url=None, api_key=None, timeout=30):
        self.url = url if url is not None else config.remediation_push_url
        self.api_key = api_key if api_key is not None else config.remediation_push_key
        self.timeout = timeout

    def push(self, student_id, title, description, reward_tier):
        if not self.url:
            raise ServiceUnavailable("REMEDIATION_PUSH_URL not configured")

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key

        payload = {
            "type": "assignment_push",
            "student_id": student_id,
            "title": title,
            "description": description,
            "xp_reward": reward_tier.get("xp_reward", 0),
            "coin_reward": reward_tier.get("coin_reward", 0),
            "difficulty_level": DIFFICULTY_BY_LEVEL.get(reward_tier.get("level"), "C"),
        }
        try:
            response = requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ServiceUnavailable(f"Remediation push failed: {e}") from e
        return True


def build_push(group, item, topic=None):
    """Title and description for one student's push."""
    topic = topic or (item.result.problem_identified if item.result else '') or 'this topic'
    title = f"{group.remediation_type}: {topic}"

    if group.level == 'proficient':
        description = f"Mastery challenge problems extending {topic}."
    else:
        misconceptions = item.result.misconceptions[:3] if item.result else []
        description = f"Targeted practice on {topic}."
        if misconceptions:
            description += " Focus areas: " + "; ".join(misconceptions)
        if item.result and item.result.nys_standard:
            description += f" Review {item.result.nys_standard} concepts."
    return title, description


def push_group(group, service, topic=None) -> StageOutcome:
    """Push the group's remediation to every student in it."""
    outcome = StageOutcome()
    for item in group.students:
        if not item.student_id:
            outcome.failure(item.id, "No student assigned")
            continue

        title, description = build_push(group, item, topic)
        try:
            service.push(item.student_id, title, description, group.reward_tier)
        except Exception as e:
            logger.warning("Remediation push failed for %s: %s", item.student_id, e)
            outcome.failure(item.id, e, item.student_id)
            continue

        outcome.success(item.id)
        audit_log("PUSH_REMEDIATION", f"student={item.student_id} level={group.level}")
    return outcome
