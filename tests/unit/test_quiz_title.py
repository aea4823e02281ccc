"""
Unit tests for quiz title parsing.
"""

import pytest

from elosync.parsing.quiz_title import ParsedQuizTitle, parse_quiz_title, split_type_tags


class TestSplitTypeTags:
    """Tests for leading [TAG] extraction."""

    def test_multiple_tags(self):
        assert split_type_tags("[READING][ART] Unit 3") == (["READING", "ART"], "Unit 3")

    def test_tags_separated_by_spaces(self):
        assert split_type_tags("  [MATH]  [LOGIC] Sets") == (["MATH", "LOGIC"], "Sets")

    def test_no_tags(self):
        assert split_type_tags("Unit 3") == ([], "Unit 3")

    def test_only_leading_tags_count(self):
        types, remaining = split_type_tags("[MATH] Chapter [2] review")
        assert types == ["MATH"]
        assert remaining == "Chapter [2] review"

    def test_blank_tags_dropped(self):
        assert split_type_tags("[ ][MATH] Sets") == (["MATH"], "Sets")


class TestParseQuizTitle:
    """Tests for the full title grammar."""

    def test_full_title(self):
        parsed = parse_quiz_title("[READING][ART] Unit 3 <8.5> (9)")

        assert parsed == ParsedQuizTitle(
            types=["READING", "ART"],
            lesson="Unit 3",
            difficulty=8.5,
            class_level=9,
        )

    def test_lesson_only(self):
        parsed = parse_quiz_title("[MATH] Calculus 1")

        assert parsed.types == ["MATH"]
        assert parsed.lesson == "Calculus 1"
        assert parsed.difficulty is None
        assert parsed.class_level is None

    def test_lesson_and_difficulty(self):
        parsed = parse_quiz_title("[SCIENCE] Cells <6>")

        assert parsed.lesson == "Cells"
        assert parsed.difficulty == 6.0
        assert parsed.class_level is None

    def test_lesson_and_class(self):
        parsed = parse_quiz_title("[SCIENCE] Cells (10)")

        assert parsed.lesson == "Cells"
        assert parsed.difficulty is None
        assert parsed.class_level == 10

    def test_tags_only(self):
        parsed = parse_quiz_title("[MATH]")

        assert parsed.types == ["MATH"]
        assert parsed.lesson is None

    def test_untagged_title_is_not_rated(self):
        assert parse_quiz_title("Unit 3 <8> (9)") is None

    def test_empty_title(self):
        assert parse_quiz_title("") is None

    @pytest.mark.parametrize("title", [
        "[MATH] Sets <hard>",
        "[MATH] Sets <hard> (9)",
        "[MATH] Sets <nan>",
        "[MATH] Sets <inf> (9)",
    ])
    def test_non_numeric_difficulty_rejected(self, title):
        assert parse_quiz_title(title) is None

    def test_non_integer_class_stays_in_lesson(self):
        parsed = parse_quiz_title("[MATH] Sets (nine)")

        assert parsed.lesson == "Sets (nine)"
        assert parsed.class_level is None
