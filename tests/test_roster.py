"""
Test: Roster — fuzzy name matching, code normalization, lookups.
"""
from scangrade.roster import Roster, Student, fuzzy_name_match, normalize_code


class TestFuzzyNameMatch:
    def test_exact_match(self):
        assert fuzzy_name_match("Alice Johnson", "Alice Johnson")

    def test_partial_first_name(self):
        assert fuzzy_name_match("Alice", "Alice Johnson")

    def test_last_first_format(self):
        assert fuzzy_name_match("Dicen Wilkins", "Wilkins Reels, Dicen Macheil")

    def test_middle_name_skipped(self):
        assert fuzzy_name_match("Luke Lundell", "Luke J Lundell")

    def test_no_match(self):
        assert not fuzzy_name_match("John Smith", "Jane Smith")

    def test_empty_search(self):
        assert not fuzzy_name_match("", "Alice Johnson")

    def test_case_insensitive(self):
        assert fuzzy_name_match("alice", "ALICE JOHNSON")


class TestNormalizeCode:
    def test_prefix_stripped(self):
        assert normalize_code("Student: 1042 ") == "1042"
        assert normalize_code("ID#1042") == "1042"

    def test_plain(self):
        assert normalize_code("S1") == "s1"

    def test_none(self):
        assert normalize_code(None) == ""


class TestRoster:
    def test_from_dicts(self, roster):
        assert len(roster) == 5
        assert roster.get("s2").display_name == "Bob Smith"

    def test_find_by_roster_id(self, roster):
        assert roster.find_by_code("S3").id == "s3"

    def test_find_by_school_id(self, roster):
        assert roster.find_by_code("ID: 1004").id == "s4"
        assert roster.find_by_code("Student ID: 1004").id == "s4"

    def test_unknown_code(self, roster):
        assert roster.find_by_code("9999") is None
        assert roster.find_by_code("") is None

    def test_find_by_name(self, roster):
        assert roster.find_by_name("alice johnson").id == "s1"
        assert roster.find_by_name("Johnson, Alice").id == "s1"

    def test_ambiguous_name(self):
        roster = Roster([
            Student("a", "Sam", "Lee"),
            Student("b", "Sam", "Lopez"),
        ])
        assert roster.find_by_name("Sam") is None
        assert roster.find_by_name("Sam Lop").id == "b"

    def test_blank_name(self, roster):
        assert roster.find_by_name("   ") is None

    def test_student_round_trip(self):
        student = Student("s9", "Zoe", "Ng", "2001")
        assert Student.from_dict(student.to_dict()).display_name == "Zoe Ng"
