"""
Code Renderer
Syntax highlighting for fenced blocks and question code snippets (Pygments).

Code is only highlighted, never executed.
"""

import re
import logging
from html import escape
from typing import Optional

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name, TextLexer
from pygments.styles import get_style_by_name
from pygments.util import ClassNotFound

from ..config.settings import RendererConfig, get_config
from ..models.content_models import CodeFragment

logger = logging.getLogger(__name__)


# Common language aliases mapping to Pygments lexer names
LANGUAGE_ALIASES = {
    "js": "javascript",
    "node": "javascript",
    "nodejs": "javascript",
    "ts": "typescript",
    "py": "python",
    "py3": "python3",
    "python2": "python",
    "sh": "bash",
    "shell": "bash",
    "zsh": "bash",
    "terminal": "bash",
    "c++": "cpp",
    "cxx": "cpp",
    "cc": "cpp",
    "h": "c",
    "hpp": "cpp",
    "c#": "csharp",
    "cs": "csharp",
    "objc": "objectivec",
    "kt": "kotlin",
    "rb": "ruby",
    "rs": "rust",
    "golang": "go",
    "yml": "yaml",
    "md": "markdown",
    "tex": "latex",
    "asm": "nasm",
    "assembly": "nasm",
    "psql": "postgresql",
    "pgsql": "postgresql",
    "txt": "text",
    "plain": "text",
    "plaintext": "text",
    "pseudocode": "text",
    "pseudo": "text",
    "none": "text",
}

CODE_WINDOW_HTML = '<div class="code-window" dir="ltr" data-language="{language}">{body}</div>'

# Minified C-like code: break after statements, around braces and after includes
STATEMENT_END_PATTERN = re.compile(r";(?!\s*\))")
OPEN_BRACE_PATTERN = re.compile(r"\{\s*")
CLOSE_BRACE_PATTERN = re.compile(r"\}\s*")
INCLUDE_PATTERN = re.compile(r"(#include\s*<[^>]+>)([^#\n])")
USING_NAMESPACE_PATTERN = re.compile(r"(using namespace \w+;)(.)")

SINGLE_LINE_MIN_LENGTH = 50
LONG_LINE_LENGTH = 150


def normalize_code(code: str) -> str:
    """
    Undo JSON escaping and re-flow code that arrived as a single line.

    Literal \\n and \\t sequences become a newline and two spaces. Code
    longer than 50 characters that is effectively one line gets a basic
    C-like layout.
    """
    if not code:
        return ""

    clean = code.replace("\\n", "\n").replace("\\t", "  ")

    lines = clean.split("\n")
    effectively_single_line = len(lines) < 2 or (
        len(lines) < 5 and any(len(line) > LONG_LINE_LENGTH for line in lines)
    )

    if effectively_single_line and len(clean) > SINGLE_LINE_MIN_LENGTH:
        clean = STATEMENT_END_PATTERN.sub(";\n", clean)
        clean = OPEN_BRACE_PATTERN.sub("{\n  ", clean)
        clean = CLOSE_BRACE_PATTERN.sub("\n}\n", clean)
        clean = INCLUDE_PATTERN.sub(r"\1\n\2", clean)
        clean = USING_NAMESPACE_PATTERN.sub(r"\1\n\2", clean)

    return clean.strip()


def normalize_language(language: Optional[str]) -> str:
    """Map a language hint to a Pygments lexer name, "text" when unknown."""
    if not language:
        return "text"

    lang = language.lower().strip()
    normalized = LANGUAGE_ALIASES.get(lang, lang)

    try:
        get_lexer_by_name(normalized)
        return normalized
    except ClassNotFound:
        logger.debug(f"[CODE] Unknown language '{language}', falling back to 'text'")
        return "text"


class CodeRenderer:
    """Renders code to inline-styled HTML inside a left-to-right code window."""

    def __init__(self, config: Optional[RendererConfig] = None):
        self.config = config or get_config()

        try:
            style = get_style_by_name(self.config.pygments_style)
        except ClassNotFound:
            logger.warning(f"[CODE] Unknown Pygments style '{self.config.pygments_style}', using monokai")
            style = get_style_by_name("monokai")

        self.formatter = HtmlFormatter(
            style=style,
            noclasses=True,
            linenos="inline" if self.config.code_line_numbers else False,
        )

    def render(self, code: str, language: Optional[str] = None) -> CodeFragment:
        normalized_code = normalize_code(code)
        normalized_language = normalize_language(language)

        try:
            lexer = get_lexer_by_name(normalized_language)
        except ClassNotFound:
            lexer = TextLexer()

        body = highlight(normalized_code, lexer, self.formatter)
        html = CODE_WINDOW_HTML.format(language=escape(normalized_language), body=body)

        return CodeFragment(html=html, language=normalized_language, code=normalized_code)
