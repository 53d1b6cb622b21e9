"""
Mermaid Renderer Service

Normalizes generated Mermaid source, then renders it to SVG with:
1. PRIMARY: Kroki self-hosted (configurable via KROKI_URL)
2. FALLBACK: mermaid.ink public API

Rendering failures are returned as data, together with the corrected
source, so the caller can show what was attempted.

Docker setup for Kroki:
  docker run -d -p 8000:8000 yuzutech/kroki
"""

import re
import json
import base64
import zlib
import time
import logging
from typing import Optional

import httpx

from ..config.settings import RendererConfig, get_config
from ..models.content_models import DiagramRenderResult
from ..services.diagram_normalizer import DiagramNormalizer

logger = logging.getLogger(__name__)

INIT_DIRECTIVE_PATTERN = re.compile(r"^(\s*%%\{\s*init\s*:\s*\{)(.*?)\}\s*\}%%", re.DOTALL)
THEME_KEY_PATTERN = re.compile(r"""['"]theme['"]\s*:""")


class MermaidRenderer:
    """
    Renders Mermaid diagrams with Kroki (primary) and mermaid.ink (fallback).
    """

    def __init__(
        self,
        config: Optional[RendererConfig] = None,
        normalizer: Optional[DiagramNormalizer] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or get_config()
        self.normalizer = normalizer or DiagramNormalizer(self.config)
        self.http_client = http_client or httpx.AsyncClient(timeout=self.config.diagram_render_timeout)

    @staticmethod
    def _encode_for_mermaid_ink(code: str, theme: str) -> str:
        """
        Encode a diagram for a mermaid.ink URL.
        Uses pako compression and base64 encoding.
        """
        config = {
            "code": code,
            "mermaid": {
                "theme": theme
            }
        }
        compressed = zlib.compress(json.dumps(config).encode("utf-8"), level=9)
        return base64.urlsafe_b64encode(compressed).decode("utf-8")

    @staticmethod
    def _themed(code: str, theme: str) -> str:
        match = INIT_DIRECTIVE_PATTERN.match(code)
        if match is None:
            return f"%%{{init: {{'theme': '{theme}'}}}}%%\n{code}"
        # A theme chosen inside the diagram wins over the requested one
        if THEME_KEY_PATTERN.search(match.group(0)):
            return code
        separator = ", " if match.group(2).strip() else ""
        return f"{match.group(1)}'theme': '{theme}'{separator}{code[match.end(1):]}"

    async def _render_with_kroki(self, code: str, theme: str) -> Optional[str]:
        """
        Render diagram using the Kroki instance.

        Returns:
            SVG markup if successful, None otherwise
        """
        try:
            response = await self.http_client.post(
                f"{self.config.kroki_url}/mermaid/svg",
                content=self._themed(code, theme),
                headers={"Content-Type": "text/plain"},
                timeout=self.config.diagram_render_timeout,
            )
            response.raise_for_status()
            logger.info(f"[MERMAID] Rendered via Kroki ({len(response.content)} bytes)")
            return response.text

        except httpx.ConnectError as e:
            logger.warning(f"[MERMAID] Kroki not available: {e}")
            return None
        except httpx.HTTPStatusError as e:
            logger.warning(f"[MERMAID] Kroki error {e.response.status_code}: {e.response.text[:200]}")
            return None
        except httpx.HTTPError as e:
            logger.warning(f"[MERMAID] Kroki failed: {e}")
            return None

    async def _render_with_mermaid_ink(self, code: str, theme: str) -> Optional[str]:
        """
        Render diagram using mermaid.ink public API (fallback).

        Returns:
            SVG markup if successful, None otherwise
        """
        try:
            response = await self.http_client.get(
                self.get_image_url(code, theme),
                timeout=self.config.diagram_render_timeout,
            )
            response.raise_for_status()
            logger.info(f"[MERMAID] Rendered via mermaid.ink ({len(response.content)} bytes)")
            return response.text

        except httpx.HTTPError as e:
            logger.warning(f"[MERMAID] mermaid.ink failed: {e}")
            return None

    def get_image_url(self, code: str, theme: str = "default") -> str:
        """mermaid.ink SVG URL for already-normalized source."""
        encoded = self._encode_for_mermaid_ink(code, theme)
        return f"{self.config.mermaid_ink_url}/svg/pako:{encoded}"

    async def render(self, source: str, theme: str = "default") -> DiagramRenderResult:
        """
        Normalize and render a diagram to SVG.

        Rendering priority:
        1. Kroki (if USE_KROKI=true and available)
        2. mermaid.ink (fallback)
        """
        start_time = time.time()
        normalized = self.normalizer.normalize_document(source)
        code = normalized.corrected

        if not code:
            return DiagramRenderResult(
                success=False,
                source=code,
                dialect=normalized.dialect,
                error="Empty diagram source",
            )

        svg = None
        renderer_used = None

        if self.config.use_kroki:
            svg = await self._render_with_kroki(code, theme)
            if svg:
                renderer_used = "kroki"

        if svg is None:
            svg = await self._render_with_mermaid_ink(code, theme)
            if svg:
                renderer_used = "mermaid.ink"

        generation_time = int((time.time() - start_time) * 1000)

        if svg is None:
            return DiagramRenderResult(
                success=False,
                source=code,
                dialect=normalized.dialect,
                generation_time_ms=generation_time,
                error="All rendering backends failed (Kroki + mermaid.ink)",
            )

        return DiagramRenderResult(
            success=True,
            source=code,
            dialect=normalized.dialect,
            svg=svg,
            renderer=renderer_used,
            generation_time_ms=generation_time,
        )

    async def close(self):
        """Close the HTTP client."""
        await self.http_client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
