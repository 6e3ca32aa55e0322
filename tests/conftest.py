"""
Shared test fixtures for the scan grader.
Fake identification/analysis/gradebook/push services, a small roster, and
monkeypatched data paths so nothing is written outside tmp_path.
Zero network calls.
"""
import pytest

from scangrade.batch_queue import AnalysisResult, BatchQueue, Identification
from scangrade.roster import Roster


class FakeIdentificationService:
    """Answers from a dict of image_ref -> Identification (or an exception to raise)."""

    def __init__(self, answers=None):
        self.answers = answers or {}
        self.calls = []

    def identify(self, image_ref):
        self.calls.append(image_ref)
        answer = self.answers.get(image_ref, Identification())
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeAnalysisService:
    """Deterministic analysis: results keyed by the first image of a submission.

    Images in ``fail_on`` raise; anything unknown gets a default 80% result.
    """

    def __init__(self, results=None, fail_on=(), on_call=None):
        self.results = results or {}
        self.fail_on = set(fail_on)
        self.on_call = on_call
        self.calls = []

    def analyze(self, image_refs):
        self.calls.append(list(image_refs))
        if self.on_call:
            self.on_call(list(image_refs))
        if image_refs[0] in self.fail_on:
            raise RuntimeError(f"vision service timeout for {image_refs[0]}")
        return self.results.get(image_refs[0], make_result(grade=80))


class FakeGradebook:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.saves = []

    def save_grade(self, student_id, grade, justification, raw_scores, standard_code=None):
        if student_id in self.fail_for:
            raise IOError(f"disk full while saving {student_id}")
        self.saves.append({
            "student_id": student_id,
            "grade": grade,
            "justification": justification,
            "raw_scores": raw_scores,
            "standard_code": standard_code,
        })
        return True


class FakePushService:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.pushes = []

    def push(self, student_id, title, description, reward_tier):
        if student_id in self.fail_for:
            raise ConnectionError("push endpoint unreachable")
        self.pushes.append({
            "student_id": student_id,
            "title": title,
            "description": description,
            "reward_tier": reward_tier,
        })
        return True


def make_result(grade=None, earned=0, possible=0, percentage=0, ocr_text='', misconceptions=(),
                **extra):
    return AnalysisResult(
        ocr_text=ocr_text,
        grade=grade,
        total_score={"earned": earned, "possible": possible, "percentage": percentage},
        misconceptions=list(misconceptions),
        **extra,
    )


ROSTER_ROWS = [
    {"id": "s1", "first_name": "Alice", "last_name": "Johnson", "student_id": "1001"},
    {"id": "s2", "first_name": "Bob", "last_name": "Smith", "student_id": "1002"},
    {"id": "s3", "first_name": "Carla", "last_name": "Diaz", "student_id": "1003"},
    {"id": "s4", "first_name": "Dan", "last_name": "Lee", "student_id": "1004"},
    {"id": "s5", "first_name": "Eve", "last_name": "Park", "student_id": "1005"},
]


@pytest.fixture
def roster():
    return Roster.from_dicts(ROSTER_ROWS)


@pytest.fixture
def queue():
    return BatchQueue()


@pytest.fixture
def result_factory():
    """make_result() as a fixture, for building AnalysisResult objects."""
    return make_result


@pytest.fixture
def add_completed(queue):
    """Add a graded primary item to the queue and return its id."""
    def _add(student_id=None, result=None, image_ref=None, student_name=None, **result_kwargs):
        ref = image_ref or f"scan_{len(queue) + 1}.png"
        item_id = queue.enqueue(ref, student_id, student_name or (student_id and student_id.upper()))
        queue.begin_analyzing(item_id)
        queue.complete(item_id, result or make_result(**result_kwargs))
        return item_id
    return _add


@pytest.fixture
def fake_identifier():
    return FakeIdentificationService


@pytest.fixture
def fake_analyzer():
    return FakeAnalysisService


@pytest.fixture
def fake_gradebook():
    return FakeGradebook


@pytest.fixture
def fake_push():
    return FakePushService


@pytest.fixture(autouse=True)
def patch_paths(monkeypatch, tmp_path):
    """Point every data path at tmp_path."""
    import scangrade.config as cfg

    monkeypatch.setattr(cfg, "AUDIT_LOG_FILE", tmp_path / "audit.log")
    monkeypatch.setattr(cfg.config, "grade_history_dir", str(tmp_path / "grade_history"))
    monkeypatch.setattr(cfg.config, "settings_file", str(tmp_path / "settings.json"))
    return tmp_path
