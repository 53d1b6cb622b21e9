"""
Content Pipeline

Renders generated content strings and questions into display fragments.

    raw text -> segment
      prose   -> extract spans -> format markdown -> restore (math from cache)
      code    -> syntax highlighting
      mermaid -> diagram normalizer (rendered client-side from corrected source)

Blocks are rendered in source order, one at a time. A prose block is only
emitted once every math span inside it has resolved.
"""

import logging
from typing import List, Optional

from ..config.settings import RendererConfig, get_config
from ..models.content_models import (
    BlockKind,
    CodeBlock,
    ContentBlock,
    RenderedBlock,
    RenderedContent,
)
from ..models.question_models import QuestionBase, QuestionType, RenderedQuestion
from ..renderers.code_renderer import CodeRenderer
from .diagram_normalizer import DiagramNormalizer
from .markdown_formatter import escape_html, format_markdown
from .math_cache import MathTypesetCache
from .segmenter import segment
from .span_extractor import extract, restore

logger = logging.getLogger(__name__)


PROSE_HTML = '<div class="prose" dir="auto">{body}</div>'
DIAGRAM_HTML = '<pre class="mermaid" dir="ltr">{source}</pre>'
DIAGRAM_LANGUAGES = {"mermaid"}


class ContentPipeline:
    """
    Orchestrates segmenting, formatting and rendering of generated content.

    The math cache is injected and owned by the caller; without one, math
    is shown as escaped source text.
    """

    def __init__(
        self,
        math_cache: Optional[MathTypesetCache] = None,
        code_renderer: Optional[CodeRenderer] = None,
        diagram_normalizer: Optional[DiagramNormalizer] = None,
        config: Optional[RendererConfig] = None,
    ):
        self.config = config or get_config()
        self.math_cache = math_cache
        self.code_renderer = code_renderer or CodeRenderer(self.config)
        self.diagram_normalizer = diagram_normalizer or DiagramNormalizer(self.config)

    async def render_prose(self, text: str) -> str:
        """Format one prose block into an HTML fragment (without the wrapper)."""
        working, spans = extract(text)
        formatted = format_markdown(working)
        return await restore(formatted, spans, self.math_cache)

    def render_code(self, code: str, language: Optional[str] = None) -> RenderedBlock:
        fragment = self.code_renderer.render(code, language)
        return RenderedBlock(
            kind=BlockKind.CODE,
            html=fragment.html,
            language=fragment.language,
            source=fragment.code,
        )

    def render_diagram(self, source: str) -> RenderedBlock:
        corrected = self.diagram_normalizer.normalize(source)
        return RenderedBlock(
            kind=BlockKind.DIAGRAM,
            html=DIAGRAM_HTML.format(source=escape_html(corrected)),
            language="mermaid",
            source=corrected,
        )

    async def render_block(self, block: ContentBlock) -> Optional[RenderedBlock]:
        if isinstance(block, CodeBlock):
            if block.language.lower() in DIAGRAM_LANGUAGES:
                return self.render_diagram(block.body)
            return self.render_code(block.body, block.language)

        if not block.text.strip():
            return None

        body = await self.render_prose(block.text.strip())
        return RenderedBlock(kind=BlockKind.PROSE, html=PROSE_HTML.format(body=body))

    async def render_blocks(self, content: str) -> List[RenderedBlock]:
        rendered: List[RenderedBlock] = []
        for block in segment(content or ""):
            result = await self.render_block(block)
            if result is not None:
                rendered.append(result)
        return rendered

    async def render(self, content: str) -> RenderedContent:
        blocks = await self.render_blocks(content)
        return RenderedContent(blocks=blocks, html="".join(block.html for block in blocks))

    async def render_html(self, content: str) -> str:
        return (await self.render(content)).html

    async def render_question(self, question: QuestionBase) -> RenderedQuestion:
        """Render every displayable part of one question."""
        options = getattr(question, "options", None) or []
        expected = question.expected_output or getattr(question, "tracing_output", None)

        rendered_options = []
        for option in options:
            rendered_options.append(await self.render_blocks(option))

        diagram = None
        if question.diagram_config is not None and question.diagram_config.code.strip():
            diagram = self.render_diagram(question.diagram_config.code)

        return RenderedQuestion(
            id=question.id,
            type=QuestionType(question.type),
            topic=question.topic,
            text=await self.render_blocks(question.text),
            options=rendered_options,
            explanation=await self.render_blocks(question.explanation),
            expected_output=await self.render_blocks(expected) if expected else None,
            code=self.render_code(question.code_snippet) if question.code_snippet else None,
            diagram=diagram,
        )
