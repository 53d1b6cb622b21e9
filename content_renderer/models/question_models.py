"""
Question Models
Generated exam questions, one variant per question kind.

The generator emits camelCase JSON (`codeSnippet`, `correctOptionIndex`);
both spellings are accepted and extra generator-only fields are ignored.
"""

from enum import Enum
from typing import Optional, List, Union, Literal, Tuple, Annotated
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .content_models import RenderedBlock


class QuestionType(str, Enum):
    """Kinds of generated questions."""
    MCQ = "MCQ"
    TRACING = "TRACING"
    CODING = "CODING"
    SHORT_ANSWER = "SHORT_ANSWER"


class _GeneratedModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class GraphConfig(_GeneratedModel):
    """Plottable 2D function graph attached to a question."""
    title: Optional[str] = None
    x_axis_label: Optional[str] = None
    y_axis_label: Optional[str] = None
    functions: List[str] = Field(default_factory=list)
    domain: Optional[Tuple[float, float]] = None
    range: Optional[Tuple[float, float]] = None


class DiagramConfig(_GeneratedModel):
    """Mermaid diagram attached to a question."""
    type: Literal["mermaid"] = "mermaid"
    code: str = ""


class QuestionBase(_GeneratedModel):
    """Fields shared by every question kind."""
    id: str = ""
    topic: str = ""
    text: str
    code_snippet: Optional[str] = None
    expected_output: Optional[str] = None
    explanation: str = ""
    graph_config: Optional[GraphConfig] = None
    diagram_config: Optional[DiagramConfig] = None


class MultipleChoiceQuestion(QuestionBase):
    type: Literal["MCQ"] = "MCQ"
    options: List[str] = Field(default_factory=list)
    correct_option_index: Optional[int] = None


class TracingQuestion(QuestionBase):
    type: Literal["TRACING"] = "TRACING"
    tracing_output: Optional[str] = None


class CodingQuestion(QuestionBase):
    type: Literal["CODING"] = "CODING"


class ShortAnswerQuestion(QuestionBase):
    type: Literal["SHORT_ANSWER"] = "SHORT_ANSWER"


Question = Annotated[
    Union[MultipleChoiceQuestion, TracingQuestion, CodingQuestion, ShortAnswerQuestion],
    Field(discriminator="type"),
]


class RenderedQuestion(BaseModel):
    """Display-ready parts of one question."""
    id: str
    type: QuestionType
    topic: str = ""
    text: List[RenderedBlock] = Field(default_factory=list)
    options: List[List[RenderedBlock]] = Field(default_factory=list)
    explanation: List[RenderedBlock] = Field(default_factory=list)
    expected_output: Optional[List[RenderedBlock]] = None
    code: Optional[RenderedBlock] = None
    diagram: Optional[RenderedBlock] = None
