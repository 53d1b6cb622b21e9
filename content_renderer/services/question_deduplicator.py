"""
Question Canonicalizer / Deduplicator

Drops generated questions that repeat an earlier one, comparing content
rather than generator-supplied ids.

Signature: type::text::code::options
- text: lowercased, markdown markers removed, whitespace collapsed
- code: all whitespace removed, lowercased ("no_code" when absent)
- options: whitespace removed, lowercased, sorted, joined by "|"
  ("no_options" when absent)

Code comparison ignores all whitespace, so two programs that differ only
in indentation or spacing are treated as the same question.
"""

import re
import uuid
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from ..config.settings import RendererConfig, get_config
from ..models.question_models import QuestionBase
from .question_parser import coerce_question

logger = logging.getLogger(__name__)


NO_CODE = "no_code"
NO_OPTIONS = "no_options"

MARKDOWN_MARKER_PATTERN = re.compile(r"[*_`~]")
WHITESPACE_PATTERN = re.compile(r"\s+")
FENCED_BLOCK_PATTERN = re.compile(r"```[\s\S]*?```")


def normalize_text(text: str) -> str:
    text = MARKDOWN_MARKER_PATTERN.sub("", (text or "").lower())
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def normalize_code(code: Optional[str]) -> str:
    if not code:
        return NO_CODE
    return WHITESPACE_PATTERN.sub("", code).lower() or NO_CODE


def normalize_options(options: Optional[List[str]]) -> str:
    if not options:
        return NO_OPTIONS
    return "|".join(sorted(WHITESPACE_PATTERN.sub("", str(option)).lower() for option in options))


def compute_signature(question: QuestionBase) -> str:
    """Composite duplicate-detection key of a question."""
    return "::".join((
        question.type,
        normalize_text(question.text),
        normalize_code(question.code_snippet),
        normalize_options(getattr(question, "options", None)),
    ))


def new_question_id() -> str:
    return f"q_{uuid.uuid4().hex[:12]}"


class QuestionDeduplicator:
    """
    Order-preserving deduplication of generated questions.

    The first occurrence of each signature wins. Kept questions get their
    display text cleaned and a fresh id.
    """

    def __init__(self, config: Optional[RendererConfig] = None):
        self.config = config or get_config()

    def clean_text(self, text: str, code_snippet: Optional[str]) -> str:
        """
        Remove code the question already shows in its code window.

        The snippet itself is stripped from the text when long enough to be
        unambiguous, and fenced blocks are replaced by a pointer note.
        """
        cleaned = text
        if code_snippet and len(code_snippet) > self.config.snippet_strip_min_length:
            while code_snippet in cleaned:
                cleaned = cleaned.replace(code_snippet, "")
            cleaned = cleaned.strip()

        if code_snippet:
            cleaned = FENCED_BLOCK_PATTERN.sub(self.config.code_window_note, cleaned)
        return cleaned

    def dedupe(self, records: Iterable[Union[QuestionBase, Dict[str, Any]]]) -> List[QuestionBase]:
        seen: Set[str] = set()
        unique: List[QuestionBase] = []
        total = 0

        for record in records or []:
            total += 1
            question = coerce_question(record)
            if question is None:
                continue

            cleaned_text = self.clean_text(question.text, question.code_snippet)
            cleaned = question.model_copy(update={"text": cleaned_text})

            signature = compute_signature(cleaned)
            if signature in seen:
                continue
            seen.add(signature)

            unique.append(cleaned.model_copy(update={"id": new_question_id()}))

        if total != len(unique):
            logger.info(f"[DEDUP] Kept {len(unique)} of {total} generated questions")
        return unique


def deduplicate_questions(
    records: Iterable[Union[QuestionBase, Dict[str, Any]]],
    config: Optional[RendererConfig] = None,
) -> List[QuestionBase]:
    """Deduplicate with a default QuestionDeduplicator."""
    return QuestionDeduplicator(config).dedupe(records)
