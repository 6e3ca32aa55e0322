"""
Batch Aggregation
=================
Class summary statistics and differentiation groups for a graded batch.

Everything here is a pure function of a queue snapshot: only completed
primary items count, continuation pages are represented by their primary,
and every grade comes from grade_resolution.item_grade().
"""
import math
from collections import Counter

from ..batch_queue import ItemStatus
from ..config import PASSING_GRADE, PROFICIENT_GRADE
from ..errors import InvalidOperation
from .grade_resolution import item_grade

COMMON_MISCONCEPTIONS_LIMIT = 5
GROUP_MISCONCEPTIONS_LIMIT = 3

SCORE_RANGES = [
    ("0-59%", 0, 60),
    ("60-69%", 60, 70),
    ("70-79%", 70, 80),
    ("80-89%", 80, 90),
    ("90-100%", 90, 101),
]

GROUP_DEFINITIONS = [
    {
        "level": "struggling",
        "label": "Needs Support",
        "description": "Students scoring below 60% - require foundational skill building",
        "remediation_type": "Basic Skills - Scaffolded Practice",
        "xp_reward": 25,
        "coin_reward": 15,
    },
    {
        "level": "developing",
        "label": "Approaching Mastery",
        "description": "Students scoring 60-79% - need targeted practice on specific concepts",
        "remediation_type": "Concept Reinforcement",
        "xp_reward": 35,
        "coin_reward": 20,
    },
    {
        "level": "proficient",
        "label": "Proficient",
        "description": "Students scoring 80%+ - ready for challenge problems and extensions",
        "remediation_type": "Challenge Extensions",
        "xp_reward": 50,
        "coin_reward": 30,
    },
]

LEVELS = [g["level"] for g in GROUP_DEFINITIONS]


def round_half_up(value):
    return int(math.floor(value + 0.5))


def gradable_items(items):
    """Completed primary items with a result: the only items reports count."""
    return [
        item for item in items
        if item.is_primary and item.status == ItemStatus.COMPLETED and item.result is not None
    ]


def top_misconceptions(items, limit):
    """Most frequent misconceptions by exact text; ties keep first-seen order."""
    counts = Counter()
    for item in items:
        for m in item.result.misconceptions:
            counts[m] += 1
    # Counter keeps insertion order and sorted() is stable
    ranked = sorted(counts.items(), key=lambda kv: -kv[1])
    return [{"misconception": m, "count": c} for m, c in ranked[:limit]]


def level_for_grade(grade):
    if grade < PASSING_GRADE:
        return "struggling"
    if grade < PROFICIENT_GRADE:
        return "developing"
    return "proficient"


class BatchSummary:
    def __init__(self, total_students=0, average_score=0, pass_rate=0, lowest_score=0,
                 highest_score=0, score_distribution=None, common_misconceptions=None):
        self.total_students = total_students
        self.average_score = average_score
        self.pass_rate = pass_rate
        self.lowest_score = lowest_score
        self.highest_score = highest_score
        self.score_distribution = score_distribution or []
        self.common_misconceptions = common_misconceptions or []

    def to_dict(self):
        return {
            "total_students": self.total_students,
            "average_score": self.average_score,
            "pass_rate": self.pass_rate,
            "lowest_score": self.lowest_score,
            "highest_score": self.highest_score,
            "score_distribution": self.score_distribution,
            "common_misconceptions": self.common_misconceptions,
        }


class DifferentiationGroup:
    def __init__(self, definition, students, misconceptions):
        self.level = definition["level"]
        self.label = definition["label"]
        self.description = definition["description"]
        self.remediation_type = definition["remediation_type"]
        self.xp_reward = definition["xp_reward"]
        self.coin_reward = definition["coin_reward"]
        self.students = students
        self.misconceptions = misconceptions

    @property
    def reward_tier(self):
        return {"level": self.level, "xp_reward": self.xp_reward, "coin_reward": self.coin_reward}

    def to_dict(self, floor_policy=None):
        return {
            "level": self.level,
            "label": self.label,
            "description": self.description,
            "remediation_type": self.remediation_type,
            "xp_reward": self.xp_reward,
            "coin_reward": self.coin_reward,
            "misconceptions": self.misconceptions,
            "students": [
                {
                    "item_id": s.id,
                    "student_id": s.student_id,
                    "student_name": s.student_name,
                    "grade": item_grade(s, floor_policy),
                }
                for s in self.students
            ],
        }


def batch_summary(items, floor_policy=None) -> BatchSummary:
    completed = gradable_items(items)
    if not completed:
        return BatchSummary()

    scores = [item_grade(item, floor_policy) for item in completed]
    distribution = [
        {"range": label, "count": sum(1 for s in scores if low <= s < high)}
        for label, low, high in SCORE_RANGES
    ]

    return BatchSummary(
        total_students=len(completed),
        average_score=round_half_up(sum(scores) / len(scores)),
        pass_rate=round_half_up(sum(1 for s in scores if s >= PASSING_GRADE) / len(scores) * 100),
        lowest_score=min(scores),
        highest_score=max(scores),
        score_distribution=distribution,
        common_misconceptions=top_misconceptions(completed, COMMON_MISCONCEPTIONS_LIMIT),
    )


def differentiation_groups(items, floor_policy=None):
    """The three performance bands, always in struggling/developing/proficient order."""
    banded = {level: [] for level in LEVELS}
    for item in gradable_items(items):
        banded[level_for_grade(item_grade(item, floor_policy))].append(item)

    return [
        DifferentiationGroup(
            definition,
            banded[definition["level"]],
            top_misconceptions(banded[definition["level"]], GROUP_MISCONCEPTIONS_LIMIT),
        )
        for definition in GROUP_DEFINITIONS
    ]


def group_for_level(items, level, floor_policy=None):
    for group in differentiation_groups(items, floor_policy):
        if group.level == level:
            return group
    raise InvalidOperation(f"Unknown differentiation level: {level}")
