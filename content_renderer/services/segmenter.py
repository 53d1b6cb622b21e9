"""
Segmenter

Splits a content string into ordered prose and fenced-code blocks.
"""

import re
from typing import List

from ..models.content_models import ProseBlock, CodeBlock, ContentBlock


# ```lang\n body ```  (language token optional, newline after it optional)
FENCE_PATTERN = re.compile(r"```([\w+#.-]*)[ \t]*\n?(.*?)```", re.DOTALL)


def segment(content: str) -> List[ContentBlock]:
    """
    Split content on fenced code blocks.

    A fence opened but never closed is left inside the surrounding prose.
    Prose between two adjacent fences is only emitted when non-empty.
    """
    if not content:
        return []

    blocks: List[ContentBlock] = []
    last_end = 0

    for match in FENCE_PATTERN.finditer(content):
        if match.start() > last_end:
            blocks.append(ProseBlock(text=content[last_end:match.start()]))
        blocks.append(CodeBlock(language=match.group(1), body=match.group(2)))
        last_end = match.end()

    if last_end < len(content):
        blocks.append(ProseBlock(text=content[last_end:]))

    return blocks
