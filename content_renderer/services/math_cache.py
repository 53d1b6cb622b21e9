"""
Math Typeset Cache

Memoizes typeset math markup keyed by (trimmed formula, display mode).

The typesetting engine is injected. The cache owns a readiness barrier
(UNINITIALIZED -> INITIALIZING -> READY) shared by every caller, warms up
common expressions in the background once the engine is ready, and
coalesces concurrent misses on the same key into a single computation.

Usage:
    cache = MathTypesetCache(MatplotlibTypesetEngine())
    cache.start()
    markup = await cache.get_markup("\\frac{1}{2}")
"""

import asyncio
import logging
from enum import Enum
from typing import Dict, Optional, Protocol, Tuple, runtime_checkable

from ..config.settings import RendererConfig, get_config
from .cache_metrics import CacheMetrics, get_metrics
from .markdown_formatter import escape_html

logger = logging.getLogger(__name__)


CacheKey = Tuple[str, bool]

MATH_ERROR_HTML = '<span class="math-error" title="Invalid math expression">[Math Error: {formula}]</span>'
MATH_PENDING_HTML = '<span class="math-pending" title="Math renderer is starting">{formula}</span>'


@runtime_checkable
class TypesetEngine(Protocol):
    """External engine turning a formula into vector markup."""

    def is_ready(self) -> bool:
        ...

    async def render(self, formula: str, display_mode: bool) -> str:
        ...


class CacheState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class MathTypesetCache:
    """
    Async memoizing cache in front of a TypesetEngine.

    Entries are never evicted and never change once stored. Engine failures
    and readiness timeouts degrade to visible fragments that are not cached,
    so a later call can still succeed.
    """

    def __init__(
        self,
        engine: TypesetEngine,
        config: Optional[RendererConfig] = None,
        metrics: Optional[CacheMetrics] = None,
    ):
        self.engine = engine
        self.config = config or get_config()
        self.metrics = metrics or get_metrics("math_typeset", self.config.service_name)

        self._entries: Dict[CacheKey, str] = {}
        self._in_flight: Dict[CacheKey, asyncio.Future] = {}
        self._state = CacheState.UNINITIALIZED
        self._ready_task: Optional[asyncio.Task] = None
        self._warmup_task: Optional[asyncio.Task] = None
        self._engine_calls = 0

    @staticmethod
    def make_key(formula: str, display_mode: bool = False) -> CacheKey:
        return (formula.strip(), bool(display_mode))

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def warmup_task(self) -> Optional[asyncio.Task]:
        return self._warmup_task

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    def start(self):
        """Begin polling for engine readiness without waiting for it."""
        if self._state != CacheState.READY:
            self._ensure_ready_task()

    def _ensure_ready_task(self) -> asyncio.Task:
        if self._ready_task is None or self._ready_task.done():
            self._state = CacheState.INITIALIZING
            self._ready_task = asyncio.create_task(self._poll_until_ready())
        return self._ready_task

    async def _poll_until_ready(self) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.math_ready_timeout

        while not self.engine.is_ready():
            if loop.time() >= deadline:
                logger.warning(
                    f"[MATH_CACHE] Engine not ready after {self.config.math_ready_timeout}s, "
                    f"rendering math as pending"
                )
                self._state = CacheState.UNINITIALIZED
                return False
            await asyncio.sleep(self.config.math_ready_poll_interval)

        self._state = CacheState.READY
        logger.info("[MATH_CACHE] Typesetting engine ready")

        if self.config.math_warmup_enabled and self._warmup_task is None:
            self._warmup_task = asyncio.create_task(self._warm_up())
        return True

    async def await_ready(self) -> bool:
        """
        Wait until the engine is ready.

        Every caller shares the same poll task. Returns False when the poll
        timed out; the next call starts a fresh poll.
        """
        if self._state == CacheState.READY:
            return True
        return await asyncio.shield(self._ensure_ready_task())

    async def _warm_up(self):
        expressions = self.config.math_warmup_expressions
        warmed = 0
        for expression in expressions:
            if not self.has(expression):
                await self.get_markup(expression)
                warmed += 1
            # Let foreground renders run between entries
            await asyncio.sleep(0)
        logger.info(f"[MATH_CACHE] Warm-up done: {warmed} expressions pre-rendered")

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def has(self, formula: str, display_mode: bool = False) -> bool:
        return self.make_key(formula, display_mode) in self._entries

    async def get_markup(self, formula: str, display_mode: bool = False) -> str:
        """
        Return typeset markup for a formula.

        Never raises for engine problems: a failing formula yields a
        math-error fragment, an engine that never became ready yields a
        math-pending fragment.
        """
        key = self.make_key(formula, display_mode)
        if not key[0]:
            return ""

        cached = self._entries.get(key)
        if cached is not None:
            self.metrics.hit()
            return cached

        in_flight = self._in_flight.get(key)
        if in_flight is not None:
            self.metrics.coalesced()
            return await asyncio.shield(in_flight)

        self.metrics.miss()
        task = asyncio.ensure_future(self._compute(key))
        self._in_flight[key] = task
        task.add_done_callback(lambda _done, k=key: self._in_flight.pop(k, None))
        return await asyncio.shield(task)

    async def _compute(self, key: CacheKey) -> str:
        formula, display_mode = key

        if not await self.await_ready():
            return MATH_PENDING_HTML.format(formula=escape_html(formula))

        self._engine_calls += 1
        try:
            with self.metrics.timed_operation("typeset"):
                markup = await self.engine.render(formula, display_mode)
        except Exception as e:
            self.metrics.error()
            logger.warning(f"[MATH_CACHE] Failed to typeset {formula!r}: {e}")
            return MATH_ERROR_HTML.format(formula=escape_html(formula))

        self._entries[key] = markup
        self.metrics.set_size(len(self._entries))
        return markup

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        return {
            "state": self._state.value,
            "entries": len(self._entries),
            "in_flight": len(self._in_flight),
            "engine_calls": self._engine_calls,
            **self.metrics.get_stats(),
        }

    async def close(self):
        """Cancel background work. Stored entries stay valid."""
        for task in (self._warmup_task, self._ready_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        logger.info(f"[MATH_CACHE] Closed with {len(self._entries)} entries")
