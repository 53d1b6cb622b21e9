"""Collaborator adapters: syntax highlighting, math typesetting, diagram rendering"""

from .code_renderer import CodeRenderer, normalize_code, normalize_language
from .math_engine import MatplotlibTypesetEngine
from .mermaid_renderer import MermaidRenderer

__all__ = [
    "CodeRenderer",
    "normalize_code",
    "normalize_language",
    "MatplotlibTypesetEngine",
    "MermaidRenderer",
]
