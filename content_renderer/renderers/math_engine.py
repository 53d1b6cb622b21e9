"""
Matplotlib Typeset Engine
Turns TeX-style formulas into inline SVG markup using matplotlib's mathtext.
"""

import asyncio
import logging
from io import StringIO
from typing import Optional

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend for server
from matplotlib import font_manager
from matplotlib.figure import Figure

from ..config.settings import RendererConfig, get_config

logger = logging.getLogger(__name__)


class MatplotlibTypesetEngine:
    """
    Typesetting engine backed by matplotlib mathtext.

    Rendering is CPU bound and runs in the default executor. Output is
    deterministic for a given formula: SVG ids use a fixed hash salt and no
    creation date is written.
    """

    def __init__(self, config: Optional[RendererConfig] = None):
        self.config = config or get_config()
        self._ready = False

        matplotlib.rcParams["svg.hashsalt"] = self.config.service_name
        matplotlib.rcParams["svg.fonttype"] = "path"
        matplotlib.rcParams["mathtext.fontset"] = "cm"

    def is_ready(self) -> bool:
        return self._ready

    def load(self):
        """Build the font cache and prime mathtext. Blocking, run it off the event loop."""
        font_manager.findfont("DejaVu Sans")
        self._render_sync("x", False)
        self._ready = True
        logger.info("[MATH_ENGINE] mathtext fonts loaded")

    async def render(self, formula: str, display_mode: bool) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._render_sync, formula, display_mode)

    def _render_sync(self, formula: str, display_mode: bool) -> str:
        font_size = (
            self.config.math_display_font_size if display_mode
            else self.config.math_inline_font_size
        )

        figure = Figure(figsize=(0.01, 0.01))
        figure.text(0, 0, f"${formula}$", fontsize=font_size)

        buffer = StringIO()
        # Invalid TeX raises ValueError here, when the text is laid out
        figure.savefig(
            buffer,
            format="svg",
            bbox_inches="tight",
            pad_inches=0.02,
            transparent=True,
            metadata={"Date": None},
        )

        svg = buffer.getvalue()
        start = svg.find("<svg")
        return svg[start:].strip() if start >= 0 else svg.strip()
