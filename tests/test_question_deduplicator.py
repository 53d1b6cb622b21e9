"""
Tests for question parsing and deduplication

Signature construction, text cleaning, order-preserving deduplication and
recovery of question lists from raw generator replies.
"""

import pytest

from content_renderer.models.question_models import (
    CodingQuestion,
    MultipleChoiceQuestion,
    ShortAnswerQuestion,
)
from content_renderer.services.question_deduplicator import (
    QuestionDeduplicator,
    compute_signature,
    deduplicate_questions,
    normalize_code,
    normalize_options,
)
from content_renderer.services.question_parser import (
    GeneratedPayloadError,
    coerce_question,
    parse_generated_payload,
)


@pytest.fixture
def deduplicator(config):
    return QuestionDeduplicator(config)


class TestSignature:
    """Composite duplicate-detection key."""

    def test_sentinels_for_missing_code_and_options(self):
        question = ShortAnswerQuestion(text="What is **x**?")
        assert compute_signature(question) == "SHORT_ANSWER::what is x?::no_code::no_options"

    def test_markdown_and_whitespace_are_ignored_in_text(self):
        first = ShortAnswerQuestion(text="Explain   `map` in  *Python*")
        second = ShortAnswerQuestion(text="explain map in python")
        assert compute_signature(first) == compute_signature(second)

    def test_option_order_and_spacing_are_ignored(self):
        assert normalize_options(["B ", "a"]) == normalize_options(["A", " b"]) == "a|b"

    def test_code_whitespace_is_ignored(self):
        assert normalize_code("def f():\n    return 1") == normalize_code("def f(): return 1")
        assert normalize_code("   ") == "no_code"
        assert normalize_code(None) == "no_code"

    def test_empty_options_use_sentinel(self):
        assert normalize_options([]) == "no_options"


class TestDedupe:
    """Order-preserving deduplication."""

    def test_reordered_options_are_duplicates(self, deduplicator):
        records = [
            {"id": "1", "type": "MCQ", "text": "Pick one", "options": ["A", "B"]},
            {"id": "2", "type": "MCQ", "text": "Pick one", "options": ["b ", "a"]},
        ]
        unique = deduplicator.dedupe(records)

        assert len(unique) == 1
        assert unique[0].options == ["A", "B"]

    def test_first_occurrence_wins_and_order_is_kept(self, deduplicator):
        records = [
            {"type": "SHORT_ANSWER", "text": "First"},
            {"type": "SHORT_ANSWER", "text": "Second"},
            {"type": "SHORT_ANSWER", "text": "first"},
            {"type": "SHORT_ANSWER", "text": "Third"},
        ]
        assert [q.text for q in deduplicator.dedupe(records)] == ["First", "Second", "Third"]

    def test_different_types_are_distinct(self, deduplicator):
        records = [
            {"type": "MCQ", "text": "What is a list?"},
            {"type": "SHORT_ANSWER", "text": "What is a list?"},
        ]
        assert len(deduplicator.dedupe(records)) == 2

    def test_code_differing_only_in_whitespace_is_duplicate(self, deduplicator):
        records = [
            {"type": "CODING", "text": "Fix it", "codeSnippet": "def f():\n    return 1"},
            {"type": "CODING", "text": "Fix it", "codeSnippet": "def f(): return 1"},
        ]
        assert len(deduplicator.dedupe(records)) == 1

    def test_fresh_ids_are_assigned(self, deduplicator):
        records = [
            {"id": "same", "text": "One"},
            {"id": "same", "text": "Two"},
        ]
        unique = deduplicator.dedupe(records)

        assert len({q.id for q in unique}) == 2
        assert all(q.id.startswith("q_") and q.id != "same" for q in unique)

    def test_records_without_text_are_skipped(self, deduplicator):
        records = [{"type": "MCQ"}, {"text": "   "}, {"text": "Kept"}, "not a record"]
        assert [q.text for q in deduplicator.dedupe(records)] == ["Kept"]

    def test_dedupe_is_idempotent_apart_from_ids(self, deduplicator):
        records = [
            {"type": "MCQ", "text": "Pick", "options": ["x", "y"]},
            {"type": "MCQ", "text": "pick", "options": ["y", "x"]},
            {"type": "TRACING", "text": "Trace this: print('hello world')", "codeSnippet": "print('hello world')"},
        ]
        once = deduplicator.dedupe(records)
        twice = deduplicator.dedupe(once)

        assert [q.model_dump(exclude={"id"}) for q in twice] == [q.model_dump(exclude={"id"}) for q in once]

    def test_module_level_helper(self, config):
        unique = deduplicate_questions([{"text": "A"}, {"text": "a"}], config)
        assert len(unique) == 1


class TestCleanText:
    """Removal of code the question already shows."""

    def test_long_snippet_is_removed_from_text(self, deduplicator):
        cleaned = deduplicator.clean_text(
            "What does this print? print('hello world')",
            "print('hello world')",
        )
        assert cleaned == "What does this print?"

    def test_short_snippet_is_kept(self, deduplicator):
        assert deduplicator.clean_text("Is x = 1 valid?", "x = 1") == "Is x = 1 valid?"

    def test_fenced_block_points_to_code_window(self, deduplicator):
        text = "Explain:\n```python\nfor i in range(3): pass\n```"
        cleaned = deduplicator.clean_text(text, "for i in range(3): pass")
        assert cleaned == "Explain:\n[See Code Window Below]"

    def test_fences_kept_without_snippet(self, deduplicator):
        text = "Explain:\n```python\nx = 1\n```"
        assert deduplicator.clean_text(text, None) == text

    def test_signature_uses_cleaned_text(self, deduplicator):
        records = [
            {"type": "TRACING", "text": "Output? print('hello world')", "codeSnippet": "print('hello world')"},
            {"type": "TRACING", "text": "Output?", "codeSnippet": "print('hello world')"},
        ]
        unique = deduplicator.dedupe(records)

        assert len(unique) == 1
        assert unique[0].text == "Output?"


class TestCoerceQuestion:
    """Permissive record coercion."""

    @pytest.mark.parametrize("raw_type,expected", [
        ("MCQ", MultipleChoiceQuestion),
        ("mcq", MultipleChoiceQuestion),
        ("coding", CodingQuestion),
        ("short-answer", ShortAnswerQuestion),
        ("essay", ShortAnswerQuestion),
        (None, ShortAnswerQuestion),
    ])
    def test_type_coercion(self, raw_type, expected):
        question = coerce_question({"text": "Q?", "type": raw_type})
        assert isinstance(question, expected)

    def test_camel_case_fields(self):
        question = coerce_question({
            "text": "Q?",
            "type": "MCQ",
            "options": [1, 2],
            "correctOptionIndex": 1,
            "codeSnippet": "x = 1",
            "difficulty": "hard",
        })

        assert question.options == ["1", "2"]
        assert question.correct_option_index == 1
        assert question.code_snippet == "x = 1"
        assert "difficulty" not in question.model_dump()

    def test_malformed_record_is_skipped(self):
        assert coerce_question({"text": "Q?", "type": "MCQ", "correctOptionIndex": "first"}) is None

    def test_model_instances_pass_through(self):
        question = ShortAnswerQuestion(text="Q?")
        assert coerce_question(question) is question


class TestParseGeneratedPayload:
    """Recovering the question list from a generator reply."""

    def test_fenced_json_list(self):
        assert parse_generated_payload('```json\n[{"text": "a"}]\n```') == [{"text": "a"}]

    def test_questions_object(self):
        assert parse_generated_payload('{"questions": [{"text": "a"}]}') == [{"text": "a"}]

    def test_list_inside_chatter(self):
        payload = 'Here you go: {"questions": [{"text": "a"}, 3]} Good luck!'
        assert parse_generated_payload(payload) == [{"text": "a"}]

    @pytest.mark.parametrize("payload", ["", "no json here", '{"foo": 1}', "```json\n```"])
    def test_unrecoverable_payload(self, payload):
        with pytest.raises(GeneratedPayloadError):
            parse_generated_payload(payload)

    def test_error_keeps_original_content(self):
        with pytest.raises(ValueError) as exc_info:
            parse_generated_payload("broken {")
        assert exc_info.value.original_content == "broken {"
