"""
Content Renderer Configuration Settings
Defaults for the rendering pipeline, overridable through environment variables.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple
import os


# Flowchart spacing injected into generated diagrams that carry no init directive
DEFAULT_FLOWCHART_INIT = (
    "%%{init: {'flowchart': {'curve': 'stepBefore', 'padding': 30, "
    "'nodeSpacing': 60, 'rankSpacing': 60, 'useMaxWidth': false}}}%%"
)

# Expressions pre-rendered once the math engine is ready
COMMON_MATH_EXPRESSIONS: Tuple[str, ...] = (
    "x", "y", "z", "t",
    "x^2", "y^2", "a^2 + b^2 = c^2",
    "\\int", "\\sum", "\\frac{dy}{dx}",
    "\\infty", "\\pi", "\\theta", "\\alpha", "\\beta",
    "\\sqrt{x}", "\\frac{1}{2}", "f(x)",
    "\\sin(x)", "\\cos(x)", "\\tan(x)",
    "\\in", "\\forall", "\\exists", "\\to",
)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class RendererConfig:
    """Global configuration of the content renderer"""

    # Service
    service_name: str = "content-renderer"
    log_level: str = "INFO"

    # Math typesetting
    math_ready_poll_interval: float = 0.05     # seconds between readiness checks
    math_ready_timeout: float = 10.0           # give up waiting for the engine after this
    math_warmup_enabled: bool = True
    math_warmup_expressions: Tuple[str, ...] = COMMON_MATH_EXPRESSIONS
    math_inline_font_size: float = 12.0
    math_display_font_size: float = 16.0

    # Code rendering
    pygments_style: str = "monokai"
    code_line_numbers: bool = False

    # Diagrams
    flowchart_init_directive: str = DEFAULT_FLOWCHART_INIT
    kroki_url: str = "http://kroki:8000"
    use_kroki: bool = True
    mermaid_ink_url: str = "https://mermaid.ink"
    diagram_render_timeout: float = 30.0

    # Question deduplication
    snippet_strip_min_length: int = 10
    code_window_note: str = "[See Code Window Below]"

    @classmethod
    def from_env(cls) -> "RendererConfig":
        """Load configuration from environment variables"""
        return cls(
            service_name=os.getenv("CONTENT_RENDERER_SERVICE_NAME", "content-renderer"),
            log_level=os.getenv("CONTENT_RENDERER_LOG_LEVEL", "INFO").upper(),
            math_ready_poll_interval=float(os.getenv("CONTENT_RENDERER_MATH_POLL_INTERVAL", "0.05")),
            math_ready_timeout=float(os.getenv("CONTENT_RENDERER_MATH_READY_TIMEOUT", "10")),
            math_warmup_enabled=_env_bool("CONTENT_RENDERER_MATH_WARMUP", "true"),
            math_inline_font_size=float(os.getenv("CONTENT_RENDERER_MATH_INLINE_FONT_SIZE", "12")),
            math_display_font_size=float(os.getenv("CONTENT_RENDERER_MATH_DISPLAY_FONT_SIZE", "16")),
            pygments_style=os.getenv("CONTENT_RENDERER_PYGMENTS_STYLE", "monokai"),
            code_line_numbers=_env_bool("CONTENT_RENDERER_CODE_LINE_NUMBERS", "false"),
            kroki_url=os.getenv("KROKI_URL", "http://kroki:8000").rstrip("/"),
            use_kroki=_env_bool("USE_KROKI", "true"),
            mermaid_ink_url=os.getenv("MERMAID_INK_URL", "https://mermaid.ink").rstrip("/"),
            diagram_render_timeout=float(os.getenv("CONTENT_RENDERER_DIAGRAM_TIMEOUT", "30")),
            snippet_strip_min_length=int(os.getenv("CONTENT_RENDERER_SNIPPET_STRIP_MIN_LENGTH", "10")),
        )


_config: Optional[RendererConfig] = None


def get_config() -> RendererConfig:
    """Get the process-wide configuration, loading it from the environment on first use."""
    global _config
    if _config is None:
        _config = RendererConfig.from_env()
    return _config
