"""
Grade Resolution
================
Single source of truth for the effective 0-100 grade of a submission.

Every report, group, gallery and gradebook save resolves grades through
effective_grade()/item_grade(). The fallback constants below must not change:
existing grading history was recorded with them.
"""

# Returned when there is no analysis result at all
NO_RESULT_GRADE = 55
# AI-suggested grades below this are ignored in favour of the rubric percentage
MIN_TRUSTED_AI_GRADE = 55
# Work shown but nothing scoreable
UNSCOREABLE_GRADE = 65

# Extracted text longer than this counts as evidence of effort
EFFORT_TEXT_MIN_CHARS = 10

# Regents 0-4 → grade conversion; 100 is reserved for teacher overrides
REGENTS_TO_GRADE = {4: 95, 3: 90, 2: 75, 1: 60, 0: 0}
MAX_CALCULATED_GRADE = 95


class FloorPolicy:
    """Minimum grades: one with evidence of effort, a lower one without."""

    def __init__(self, no_evidence_floor=NO_RESULT_GRADE, effort_floor=UNSCOREABLE_GRADE):
        self.no_evidence_floor = no_evidence_floor
        self.effort_floor = effort_floor

    def floor_for(self, has_effort: bool):
        return self.effort_floor if has_effort else self.no_evidence_floor

    def to_dict(self):
        return {"no_evidence_floor": self.no_evidence_floor, "effort_floor": self.effort_floor}

    def __repr__(self):
        return f"FloorPolicy(no_evidence_floor={self.no_evidence_floor}, effort_floor={self.effort_floor})"


def _clamp(grade):
    return max(0, min(100, grade))


def has_evidence_of_effort(result) -> bool:
    """Non-trivial extracted text or any earned points."""
    if result is None:
        return False
    text = (result.ocr_text or '').strip()
    return len(text) > EFFORT_TEXT_MIN_CHARS or (result.total_score.earned or 0) > 0


def effective_grade(result, floor_policy=None):
    """Resolve one grade from an analysis result.

    1. no result → the no-evidence floor (55 without a policy)
    2. AI-suggested grade ≥ 55 → that grade
    3. scoreable rubric → rubric percentage
    4. otherwise → 65

    With a floor policy, the grade is then raised to the effort floor or
    the no-evidence floor depending on has_evidence_of_effort().
    """
    if result is None:
        if floor_policy is not None:
            return _clamp(floor_policy.no_evidence_floor)
        return NO_RESULT_GRADE

    if result.grade is not None and result.grade >= MIN_TRUSTED_AI_GRADE:
        grade = result.grade
    elif result.total_score.possible > 0:
        grade = result.total_score.percentage
    else:
        grade = UNSCOREABLE_GRADE

    if floor_policy is not None:
        grade = max(grade, floor_policy.floor_for(has_evidence_of_effort(result)))

    return _clamp(grade)


def item_grade(item, floor_policy=None):
    """Effective grade of a queue item, honouring a teacher override."""
    if item.grade_override is not None:
        return item.grade_override
    return effective_grade(item.result, floor_policy)


def calculate_grade(percentage, has_work, regents_score=None):
    """Recalculate a stored grade from raw scores.

    No work shown is always 0. A Regents score wins over the percentage;
    percentages are scaled so the calculated maximum is 95.
    """
    if not has_work:
        return 0

    if regents_score is not None and regents_score >= 0:
        return min(MAX_CALCULATED_GRADE, REGENTS_TO_GRADE.get(regents_score, 0))

    if percentage > 0:
        scaled = int(percentage / 100 * MAX_CALCULATED_GRADE + 0.5)
        return min(MAX_CALCULATED_GRADE, scaled)

    return 0
