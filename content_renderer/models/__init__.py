"""Content Renderer models"""

from .content_models import (
    SpanKind,
    BlockKind,
    DiagramDialect,
    ProseBlock,
    CodeBlock,
    ContentBlock,
    ProtectedSpan,
    DiagramDocument,
    NormalizationResult,
    DiagramRenderResult,
    CodeFragment,
    RenderedBlock,
    RenderedContent,
)
from .question_models import (
    QuestionType,
    GraphConfig,
    DiagramConfig,
    QuestionBase,
    MultipleChoiceQuestion,
    TracingQuestion,
    CodingQuestion,
    ShortAnswerQuestion,
    Question,
    RenderedQuestion,
)

__all__ = [
    "SpanKind",
    "BlockKind",
    "DiagramDialect",
    "ProseBlock",
    "CodeBlock",
    "ContentBlock",
    "ProtectedSpan",
    "DiagramDocument",
    "NormalizationResult",
    "DiagramRenderResult",
    "CodeFragment",
    "RenderedBlock",
    "RenderedContent",
    "QuestionType",
    "GraphConfig",
    "DiagramConfig",
    "QuestionBase",
    "MultipleChoiceQuestion",
    "TracingQuestion",
    "CodingQuestion",
    "ShortAnswerQuestion",
    "Question",
    "RenderedQuestion",
]
