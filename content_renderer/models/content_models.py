"""
Content Renderer Models
Pipeline values (dataclasses) and rendered output models (Pydantic).
"""

from enum import Enum
from typing import Optional, List, Union
from dataclasses import dataclass, field
from pydantic import BaseModel, Field


class SpanKind(str, Enum):
    """Kind of substring protected from markdown formatting."""
    MATH = "math"
    INLINE_CODE = "inline_code"


class BlockKind(str, Enum):
    """Kind of rendered content block."""
    PROSE = "prose"
    CODE = "code"
    DIAGRAM = "diagram"


class DiagramDialect(str, Enum):
    """Mermaid sub-grammars the normalizer knows how to repair."""
    FLOWCHART = "flowchart"
    CLASS = "class"
    ER = "er"
    SEQUENCE = "sequence"
    MINDMAP = "mindmap"
    STATE = "state"
    UNKNOWN = "unknown"


# ============================================
# Segmenter output
# ============================================

@dataclass(frozen=True)
class ProseBlock:
    """Regular text, possibly containing math, inline code and emphasis."""
    text: str


@dataclass(frozen=True)
class CodeBlock:
    """Fenced code block."""
    language: str
    body: str


ContentBlock = Union[ProseBlock, CodeBlock]


@dataclass
class ProtectedSpan:
    """
    Substring replaced by an inert placeholder during one normalization pass.

    `id` is the placeholder token itself. For inline code, `markup` holds the
    already-escaped display markup; for math it stays empty until restoration.
    """
    id: str
    kind: SpanKind
    raw: str                       # formula or code text, delimiters removed
    display_mode: bool = False
    source: str = ""               # matched text including delimiters
    markup: str = ""


# ============================================
# Diagram models
# ============================================

class DiagramDocument(BaseModel):
    """Diagram source with its detected dialect."""
    source: str
    dialect: DiagramDialect = DiagramDialect.UNKNOWN


class NormalizationResult(BaseModel):
    """Outcome of a diagram normalization pass."""
    original: str
    corrected: str
    dialect: DiagramDialect
    applied_rules: List[str] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.original != self.corrected


class DiagramRenderResult(BaseModel):
    """Result of handing corrected source to a Mermaid rendering backend."""
    success: bool
    source: str = Field(..., description="Corrected source that was sent to the renderer")
    dialect: DiagramDialect = DiagramDialect.UNKNOWN
    svg: Optional[str] = None
    renderer: Optional[str] = None
    error: Optional[str] = None
    generation_time_ms: int = 0


# ============================================
# Rendered output
# ============================================

class CodeFragment(BaseModel):
    """Syntax highlighted code ready for display."""
    html: str
    language: str
    code: str = Field(..., description="Normalized code that was highlighted")


class RenderedBlock(BaseModel):
    """One rendered block, in source order."""
    kind: BlockKind
    html: str = ""
    language: Optional[str] = None
    source: Optional[str] = Field(None, description="Code text or corrected diagram source")


class RenderedContent(BaseModel):
    """All blocks of one content string."""
    blocks: List[RenderedBlock] = Field(default_factory=list)
    html: str = ""
