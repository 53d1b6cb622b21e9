"""
Content Renderer

Turns loosely-structured generated text into safe, renderable content:
- Markdown emphasis, inline code and math rendered to HTML fragments
- Typeset math memoized behind a readiness barrier (MathTypesetCache)
- Generated Mermaid source repaired per dialect (DiagramNormalizer)
- Generated question lists deduplicated (QuestionDeduplicator)

Usage:
    from content_renderer import ContentPipeline, MathTypesetCache, MatplotlibTypesetEngine

    cache = MathTypesetCache(MatplotlibTypesetEngine())
    cache.start()
    pipeline = ContentPipeline(math_cache=cache)
    html = await pipeline.render_html("The area is $\\pi r^2$, see `area()`.")
"""

from .config import RendererConfig, get_config
from .models import (
    BlockKind,
    DiagramDialect,
    RenderedBlock,
    RenderedContent,
    NormalizationResult,
    DiagramRenderResult,
    QuestionType,
    Question,
    RenderedQuestion,
)
from .services import (
    ContentPipeline,
    MathTypesetCache,
    TypesetEngine,
    DiagramNormalizer,
    QuestionDeduplicator,
    deduplicate_questions,
    parse_generated_payload,
    GeneratedPayloadError,
)
from .renderers import CodeRenderer, MatplotlibTypesetEngine, MermaidRenderer

__version__ = "1.0.0"

__all__ = [
    "RendererConfig",
    "get_config",
    "BlockKind",
    "DiagramDialect",
    "RenderedBlock",
    "RenderedContent",
    "NormalizationResult",
    "DiagramRenderResult",
    "QuestionType",
    "Question",
    "RenderedQuestion",
    "ContentPipeline",
    "MathTypesetCache",
    "TypesetEngine",
    "DiagramNormalizer",
    "QuestionDeduplicator",
    "deduplicate_questions",
    "parse_generated_payload",
    "GeneratedPayloadError",
    "CodeRenderer",
    "MatplotlibTypesetEngine",
    "MermaidRenderer",
]
