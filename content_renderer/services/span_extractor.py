"""
Protected-Span Extractor

Math and inline code are swapped for inert placeholder tokens before any
escaping or markdown formatting runs, then restored at the end:

    working, spans = extract(text)
    html = format_markdown(working)
    html = await restore(html, spans, math_cache)

Placeholders are built from private-use delimiters around ASCII letters and
digits, so neither the HTML escaper nor the emphasis patterns can touch them.
"""

import re
import uuid
import asyncio
import itertools
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

from ..models.content_models import ProtectedSpan, SpanKind
from .markdown_formatter import escape_html

if TYPE_CHECKING:
    from .math_cache import MathTypesetCache


PLACEHOLDER_OPEN = "\ue000"
PLACEHOLDER_CLOSE = "\ue001"
PLACEHOLDER_PATTERN = re.compile(PLACEHOLDER_OPEN + "[0-9a-z]+" + PLACEHOLDER_CLOSE)

# Block forms are scanned before inline forms so "$$x$$" never reads as two "$" spans.
# Later scans never swallow a placeholder left by an earlier one.
BLOCK_MATH_PATTERNS = (
    re.compile(r"\$\$(.+?)\$\$", re.DOTALL),
    re.compile(r"\\\[([^" + PLACEHOLDER_OPEN + r"]+?)\\\]"),
)
INLINE_MATH_PATTERNS = (
    re.compile(r"\\\(([^\n" + PLACEHOLDER_OPEN + r"]+?)\\\)"),
    # "$5 and $10" stays text: no space inside the delimiters, no digit after the closing one
    re.compile(
        r"(?<![\\$])\$(?![\s$])((?:\\[^\n]|[^$\\\n" + PLACEHOLDER_OPEN + r"])+?)(?<!\s)\$(?![\d$])"
    ),
)
INLINE_CODE_PATTERN = re.compile(r"(?<!`)(`+)(?!`)([^\n]+?)(?<!`)\1(?!`)")

INLINE_CODE_HTML = '<code class="inline-code" dir="ltr">{code}</code>'
INLINE_MATH_HTML = '<span class="math math-inline" dir="ltr" style="unicode-bidi: isolate">{markup}</span>'
DISPLAY_MATH_HTML = '<div class="math math-display" dir="ltr" style="unicode-bidi: isolate">{markup}</div>'
RAW_MATH_HTML = '<span class="math math-raw" dir="ltr">{source}</span>'


class SpanExtractor:
    """Collects protected spans for a single text block."""

    def __init__(self):
        self._nonce = uuid.uuid4().hex[:8]
        self._counter = itertools.count()
        self.spans: List[ProtectedSpan] = []

    def _token(self, kind: SpanKind) -> str:
        letter = "m" if kind == SpanKind.MATH else "c"
        return f"{PLACEHOLDER_OPEN}{self._nonce}{letter}{next(self._counter)}{PLACEHOLDER_CLOSE}"

    def _protect_math(self, match: re.Match, display_mode: bool) -> str:
        formula = match.group(1)
        if not formula.strip():
            return match.group(0)
        span = ProtectedSpan(
            id=self._token(SpanKind.MATH),
            kind=SpanKind.MATH,
            raw=formula,
            display_mode=display_mode,
            source=match.group(0),
        )
        self.spans.append(span)
        return span.id

    def _protect_code(self, match: re.Match) -> str:
        code = self._unprotect(match.group(2)).strip()
        if not code:
            return match.group(0)
        span = ProtectedSpan(
            id=self._token(SpanKind.INLINE_CODE),
            kind=SpanKind.INLINE_CODE,
            raw=code,
            source=match.group(0),
            markup=INLINE_CODE_HTML.format(code=escape_html(code)),
        )
        self.spans.append(span)
        return span.id

    def _unprotect(self, text: str) -> str:
        """Put back math that was extracted from inside an inline code span."""
        if PLACEHOLDER_OPEN not in text:
            return text
        by_id = {span.id: span for span in self.spans}

        def put_back(match: re.Match) -> str:
            span = by_id.get(match.group(0))
            if span is None:
                return match.group(0)
            self.spans.remove(span)
            return span.source

        return PLACEHOLDER_PATTERN.sub(put_back, text)

    def extract(self, prose: str) -> str:
        working = prose
        for pattern in BLOCK_MATH_PATTERNS:
            working = pattern.sub(lambda m: self._protect_math(m, True), working)
        for pattern in INLINE_MATH_PATTERNS:
            working = pattern.sub(lambda m: self._protect_math(m, False), working)
        working = INLINE_CODE_PATTERN.sub(self._protect_code, working)
        return working


def extract(prose: str) -> Tuple[str, List[ProtectedSpan]]:
    """
    Replace math and inline code spans with placeholder tokens.

    Unterminated delimiters are left as literal text.

    Returns:
        (working text with placeholders, protected spans)
    """
    extractor = SpanExtractor()
    working = extractor.extract(prose or "")
    return working, extractor.spans


def wrap_math(markup: str, display_mode: bool) -> str:
    """Isolate typeset math so it always reads left to right, even inside RTL text."""
    template = DISPLAY_MATH_HTML if display_mode else INLINE_MATH_HTML
    return template.format(markup=markup)


async def restore(
    formatted: str,
    spans: List[ProtectedSpan],
    math_cache: Optional["MathTypesetCache"] = None,
) -> str:
    """
    Substitute every placeholder in a formatted fragment.

    All math lookups of the block are issued together and awaited before any
    substitution, so the fragment is never partially rendered. Without a
    math cache, formulas are restored as escaped source text.
    """
    if not spans:
        return formatted

    math_spans = [span for span in spans if span.kind == SpanKind.MATH]
    replacements: Dict[str, str] = {}

    if math_spans and math_cache is not None:
        markups = await asyncio.gather(*(
            math_cache.get_markup(span.raw, span.display_mode) for span in math_spans
        ))
        for span, markup in zip(math_spans, markups):
            replacements[span.id] = wrap_math(markup, span.display_mode)
    else:
        for span in math_spans:
            replacements[span.id] = RAW_MATH_HTML.format(source=escape_html(span.source))

    for span in spans:
        if span.kind == SpanKind.INLINE_CODE:
            replacements[span.id] = span.markup

    restored = formatted
    for token, markup in replacements.items():
        restored = restored.replace(token, markup)
    return restored
