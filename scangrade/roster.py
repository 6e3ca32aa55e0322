"""
Class Roster
============
Students a scan can be matched to, and the lookups the identification
stage uses: printed code lookup and handwritten name matching.
"""
import re


def _clean_words(text):
    # Strip punctuation (commas, semicolons, periods) and normalize
    return re.sub(r'[,;.\'"]+', ' ', (text or '').lower()).split()


def fuzzy_name_match(search, full_name):
    """Word-based name matching. True if every word in search appears
    as a word (or word-prefix) in full_name. Order-independent, case-insensitive.

    Examples:
        fuzzy_name_match("Dicen Wilkins", "Wilkins Reels, Dicen Macheil") → True
        fuzzy_name_match("Luke Lundell", "Luke J Lundell") → True
        fuzzy_name_match("John Smith", "Jane Smith") → False
    """
    search_words = _clean_words(search)
    name_words = _clean_words(full_name)
    if not search_words:
        return False
    return all(
        any(nw.startswith(sw) or sw.startswith(nw) for nw in name_words)
        for sw in search_words
    )


def normalize_code(code):
    """Normalize a printed/QR code: 'Student: 1042 ' -> '1042'."""
    if code is None:
        return ''
    c = str(code).strip().lower()
    c = re.sub(r'^(?:(?:student|id|sid)\s*[:#-]?\s*)+', '', c)
    return c


class Student:
    def __init__(self, id, first_name, last_name, student_id=None):
        self.id = id
        self.first_name = first_name or ''
        self.last_name = last_name or ''
        self.student_id = student_id

    @property
    def display_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self):
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "student_id": self.student_id,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data["id"],
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
            student_id=data.get("student_id"),
        )


class Roster:
    def __init__(self, students=None):
        self.students = list(students or [])

    @classmethod
    def from_dicts(cls, rows):
        return cls(Student.from_dict(r) for r in rows)

    def __len__(self):
        return len(self.students)

    def __iter__(self):
        return iter(self.students)

    def get(self, student_id):
        return next((s for s in self.students if s.id == student_id), None)

    def find_by_code(self, code):
        """Match a parsed code against roster ids and school student ids."""
        wanted = normalize_code(code)
        if not wanted:
            return None
        for s in self.students:
            if normalize_code(s.id) == wanted:
                return s
            if s.student_id and normalize_code(s.student_id) == wanted:
                return s
        return None

    def find_by_name(self, name):
        """Unique roster student whose name matches, or None if zero or several do."""
        if not name or not name.strip():
            return None
        matches = [s for s in self.students if fuzzy_name_match(name, s.display_name)]
        if len(matches) == 1:
            return matches[0]
        return None
