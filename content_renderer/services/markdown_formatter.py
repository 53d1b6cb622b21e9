"""
Markdown Formatter

Escapes and applies strict-boundary bold/italic formatting to text whose
math and inline code were already replaced by placeholders.
"""

import html
import re

ZERO_WIDTH_SPACE = "\u200b"

# Text made only of emphasis markers, e.g. an option rendered as "**"
EMPHASIS_ONLY_PATTERN = re.compile(r"\s*[*_]+\s*")

# Exactly two markers on each side, non-whitespace at both inner ends, single line
BOLD_STAR_PATTERN = re.compile(r"(?<!\*)\*\*(?![*\s])(.+?)(?<![*\s])\*\*(?!\*)")
BOLD_UNDERSCORE_PATTERN = re.compile(r"(?<![\w_])__(?![_\s])(.+?)(?<![_\s])__(?![\w_])")

# Single markers only; never touches a marker belonging to a ** or *** run
ITALIC_STAR_PATTERN = re.compile(r"(?<!\*)\*(?![*\s])(.+?)(?<![*\s])\*(?!\*)")
ITALIC_UNDERSCORE_PATTERN = re.compile(r"(?<![\w_])_(?![_\s])(.+?)(?<![_\s])_(?![\w_])")

BOLD_HTML = r"<strong>\1</strong>"
ITALIC_HTML = r"<em>\1</em>"


def escape_html(text: str) -> str:
    """Escape the three characters that are significant in HTML text content."""
    return html.escape(text, quote=False)


def is_emphasis_only(text: str) -> bool:
    return bool(text) and EMPHASIS_ONLY_PATTERN.fullmatch(text) is not None


def separate_markers(text: str) -> str:
    """Put a zero-width space between adjacent markers so nothing can pair them up."""
    return re.sub(r"([*_])(?=[*_])", r"\1" + ZERO_WIDTH_SPACE, text)


def format_markdown(text: str) -> str:
    """
    Format placeholder-bearing text into an HTML-safe fragment.

    Order matters: escaping first (protected spans are already inert
    placeholders), then bold, then italic on what bold left behind.

    Args:
        text: Working text produced by the span extractor

    Returns:
        HTML fragment, still containing the placeholder tokens
    """
    if not text:
        return ""

    if is_emphasis_only(text):
        return separate_markers(text)

    formatted = escape_html(text)
    formatted = BOLD_STAR_PATTERN.sub(BOLD_HTML, formatted)
    formatted = BOLD_UNDERSCORE_PATTERN.sub(BOLD_HTML, formatted)
    formatted = ITALIC_STAR_PATTERN.sub(ITALIC_HTML, formatted)
    formatted = ITALIC_UNDERSCORE_PATTERN.sub(ITALIC_HTML, formatted)
    return formatted
