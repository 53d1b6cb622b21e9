"""
Generated Question Payload Parsing

Turns the generator's JSON reply into question models.

Strategies for the raw payload (in order):
1. Strip ```json fences and parse directly
2. Extract the first JSON array/object from surrounding chatter

Individual records are coerced permissively: a missing or unknown `type`
falls back to SHORT_ANSWER, and records without text are skipped.
"""

import json
import re
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import TypeAdapter, ValidationError

from ..models.question_models import Question, QuestionBase, QuestionType

logger = logging.getLogger(__name__)


JSON_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)
JSON_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")
JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")

QUESTION_TYPES = {question_type.value for question_type in QuestionType}

_question_adapter = TypeAdapter(Question)


class GeneratedPayloadError(ValueError):
    """Raised when a generator reply holds no decodable question list."""

    def __init__(self, message: str, original_content: str = ""):
        super().__init__(message)
        self.original_content = original_content


def _try_parse(content: str) -> Optional[Any]:
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        return None


def parse_generated_payload(payload: str) -> List[Dict[str, Any]]:
    """
    Decode a generator reply into raw question records.

    Accepts a bare JSON list or an object with a `questions` list.

    Raises:
        GeneratedPayloadError: if no JSON question list can be recovered
    """
    content = JSON_FENCE_PATTERN.sub("", payload or "").strip()
    if not content:
        raise GeneratedPayloadError("Generated payload is empty", payload or "")

    data = _try_parse(content)
    if data is None:
        for pattern in (JSON_ARRAY_PATTERN, JSON_OBJECT_PATTERN):
            match = pattern.search(content)
            if match:
                data = _try_parse(match.group())
                if data is not None:
                    break

    if data is None:
        raise GeneratedPayloadError("Generated payload is not valid JSON", payload)

    if isinstance(data, dict):
        data = data.get("questions")
    if not isinstance(data, list):
        raise GeneratedPayloadError("Generated payload holds no question list", payload)

    records = [item for item in data if isinstance(item, dict)]
    if len(records) != len(data):
        logger.warning(f"[DEDUP] Dropped {len(data) - len(records)} non-object entries from payload")
    return records


def _normalize_type(value: Any) -> str:
    normalized = str(value or "").strip().upper().replace("-", "_").replace(" ", "_")
    return normalized if normalized in QUESTION_TYPES else QuestionType.SHORT_ANSWER.value


def coerce_question(record: Union[QuestionBase, Dict[str, Any], None]) -> Optional[QuestionBase]:
    """
    Build a question model from a loosely-typed record.

    Returns None (with a warning) for records that cannot be used.
    """
    if isinstance(record, QuestionBase):
        return record
    if not isinstance(record, dict):
        logger.warning(f"[DEDUP] Skipping non-object question record: {type(record).__name__}")
        return None

    text = record.get("text")
    if not isinstance(text, str) or not text.strip():
        logger.warning(f"[DEDUP] Skipping question without text (id={record.get('id')!r})")
        return None

    data = dict(record)
    data["type"] = _normalize_type(record.get("type"))
    if data.get("id") is not None:
        data["id"] = str(data["id"])

    options = data.get("options")
    if isinstance(options, list):
        data["options"] = [str(option) for option in options if option is not None]
    elif options is not None:
        data.pop("options")

    try:
        return _question_adapter.validate_python(data)
    except ValidationError as e:
        logger.warning(
            f"[DEDUP] Skipping malformed question (id={record.get('id')!r}): "
            f"{e.error_count()} validation errors"
        )
        return None
