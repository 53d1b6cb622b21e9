"""
Shared fixtures for content renderer tests.

The real typesetting engine is replaced by FakeTypesetEngine so cache
behaviour can be tested without matplotlib rendering.
"""

import asyncio

import pytest

from content_renderer.config.settings import RendererConfig
from content_renderer.services.cache_metrics import CacheMetrics
from content_renderer.services.math_cache import MathTypesetCache


class FakeTypesetEngine:
    """Deterministic engine: markup is derived from the formula."""

    def __init__(self, ready: bool = True, delay: float = 0.0, failing=()):
        self.ready = ready
        self.delay = delay
        self.failing = set(failing)
        self.calls = []

    def is_ready(self) -> bool:
        return self.ready

    async def render(self, formula: str, display_mode: bool) -> str:
        self.calls.append((formula, display_mode))
        if self.delay:
            await asyncio.sleep(self.delay)
        if formula in self.failing:
            raise ValueError(f"Unknown symbol in {formula}")
        mode = "display" if display_mode else "inline"
        return f'<svg data-mode="{mode}">{formula}</svg>'


@pytest.fixture
def config():
    return RendererConfig(
        math_ready_poll_interval=0.01,
        math_ready_timeout=0.2,
        math_warmup_enabled=False,
    )


@pytest.fixture
def engine():
    return FakeTypesetEngine()


@pytest.fixture
def math_cache(engine, config):
    return MathTypesetCache(engine, config, metrics=CacheMetrics("math_typeset", "test"))
