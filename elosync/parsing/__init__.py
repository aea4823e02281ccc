from .quiz_title import ParsedQuizTitle, parse_quiz_title, split_type_tags

__all__ = ["ParsedQuizTitle", "parse_quiz_title", "split_type_tags"]
