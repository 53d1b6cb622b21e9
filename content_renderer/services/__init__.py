"""Content Renderer services"""

from .segmenter import segment
from .span_extractor import extract, restore, wrap_math
from .markdown_formatter import format_markdown, escape_html
from .math_cache import MathTypesetCache, TypesetEngine, CacheState
from .cache_metrics import CacheMetrics, get_metrics, get_all_stats
from .diagram_normalizer import DiagramNormalizer, DiagramRule, detect_dialect
from .question_parser import GeneratedPayloadError, parse_generated_payload, coerce_question
from .question_deduplicator import QuestionDeduplicator, compute_signature, deduplicate_questions
from .content_pipeline import ContentPipeline

__all__ = [
    "segment",
    "extract",
    "restore",
    "wrap_math",
    "format_markdown",
    "escape_html",
    "MathTypesetCache",
    "TypesetEngine",
    "CacheState",
    "CacheMetrics",
    "get_metrics",
    "get_all_stats",
    "DiagramNormalizer",
    "DiagramRule",
    "detect_dialect",
    "GeneratedPayloadError",
    "parse_generated_payload",
    "coerce_question",
    "QuestionDeduplicator",
    "compute_signature",
    "deduplicate_questions",
    "ContentPipeline",
]
