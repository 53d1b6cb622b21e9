"""
Content Renderer Microservice

FastAPI service that turns generated text into safe display fragments:
markdown + math + code rendering, Mermaid repair and rendering, and
deduplication of generated question lists.

Port: 8010
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from .config.settings import get_config
from .models.content_models import (
    DiagramRenderResult,
    NormalizationResult,
    RenderedBlock,
)
from .models.question_models import Question, QuestionBase, RenderedQuestion
from .renderers.code_renderer import CodeRenderer
from .renderers.math_engine import MatplotlibTypesetEngine
from .renderers.mermaid_renderer import MermaidRenderer
from .services.cache_metrics import get_all_stats
from .services.content_pipeline import ContentPipeline
from .services.diagram_normalizer import DiagramNormalizer
from .services.math_cache import MathTypesetCache
from .services.question_deduplicator import QuestionDeduplicator
from .services.question_parser import GeneratedPayloadError, coerce_question, parse_generated_payload


config = get_config()

logging.basicConfig(
    level=getattr(logging, config.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize services
math_cache = MathTypesetCache(MatplotlibTypesetEngine(config), config)
diagram_normalizer = DiagramNormalizer(config)
pipeline = ContentPipeline(
    math_cache=math_cache,
    code_renderer=CodeRenderer(config),
    diagram_normalizer=diagram_normalizer,
    config=config,
)
mermaid_renderer = MermaidRenderer(config, normalizer=diagram_normalizer)
deduplicator = QuestionDeduplicator(config)


def _report_engine_load(future: asyncio.Future):
    if not future.cancelled() and future.exception() is not None:
        logger.error(f"[CONTENT_RENDERER] Math engine failed to load: {future.exception()}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("[CONTENT_RENDERER] Starting up...")

    # Font loading blocks, so it runs in the executor while the cache polls for readiness
    load_engine = getattr(math_cache.engine, "load", None)
    if load_engine is not None and not math_cache.engine.is_ready():
        loading = asyncio.get_running_loop().run_in_executor(None, load_engine)
        loading.add_done_callback(_report_engine_load)
    math_cache.start()

    logger.info(f"[CONTENT_RENDERER] Kroki: {config.kroki_url} (enabled: {config.use_kroki})")
    yield

    logger.info("[CONTENT_RENDERER] Shutting down...")
    await math_cache.close()
    await mermaid_renderer.close()


app = FastAPI(
    title="Content Renderer Service",
    description="Safe rendering of generated content: markdown, math, code, diagrams and questions",
    version="1.0.0",
    lifespan=lifespan,
)


# ============================================
# Request/Response Models
# ============================================

class RenderRequest(BaseModel):
    """Request to render a content string."""
    content: str = Field(..., description="Raw generated text (markdown, math, fenced code)")


class RenderResponse(BaseModel):
    blocks: List[RenderedBlock]
    html: str


class DiagramRequest(BaseModel):
    """Request carrying Mermaid source."""
    code: str = Field(..., description="Mermaid diagram code")
    theme: str = Field(default="default")


class DedupeRequest(BaseModel):
    """Either already-decoded question records or the raw generator reply."""
    questions: Optional[List[Dict[str, Any]]] = None
    payload: Optional[str] = Field(None, description="Raw generator reply, possibly fenced JSON")


class DedupeResponse(BaseModel):
    questions: List[Question]
    received: int
    kept: int


class RenderQuestionRequest(BaseModel):
    question: Dict[str, Any] = Field(..., description="Question record, camelCase or snake_case")


# ============================================
# Health & Info Endpoints
# ============================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": config.service_name,
        "version": "1.0.0",
        "math_engine": math_cache.state.value,
    }


@app.get("/metrics")
async def metrics():
    """Prometheus exposition."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/api/v1/math/stats")
async def math_stats():
    """Math cache statistics."""
    return {
        "math_cache": math_cache.stats(),
        "caches": get_all_stats(),
    }


# ============================================
# Rendering Endpoints
# ============================================

@app.post("/api/v1/render", response_model=RenderResponse)
async def render_content(request: RenderRequest):
    """Render a content string into ordered display blocks."""
    rendered = await pipeline.render(request.content)
    return RenderResponse(blocks=rendered.blocks, html=rendered.html)


@app.post("/api/v1/diagrams/normalize", response_model=NormalizationResult)
async def normalize_diagram(request: DiagramRequest):
    """Repair generated Mermaid source without rendering it."""
    return diagram_normalizer.normalize_document(request.code)


@app.post("/api/v1/diagrams/render", response_model=DiagramRenderResult)
async def render_diagram(request: DiagramRequest):
    """Repair and render Mermaid source to SVG. Failures are reported in the body."""
    return await mermaid_renderer.render(request.code, theme=request.theme)


# ============================================
# Question Endpoints
# ============================================

@app.post("/api/v1/questions/dedupe", response_model=DedupeResponse)
async def dedupe_questions(request: DedupeRequest):
    """Deduplicate generated questions, from records or from the raw generator reply."""
    if request.questions is not None:
        records = request.questions
    elif request.payload is not None:
        try:
            records = parse_generated_payload(request.payload)
        except GeneratedPayloadError as e:
            raise HTTPException(status_code=422, detail=str(e))
    else:
        raise HTTPException(status_code=422, detail="Provide either 'questions' or 'payload'")

    unique: List[QuestionBase] = deduplicator.dedupe(records)
    return DedupeResponse(questions=unique, received=len(records), kept=len(unique))


@app.post("/api/v1/questions/render", response_model=RenderedQuestion)
async def render_question(request: RenderQuestionRequest):
    """Render every displayable part of one question."""
    question = coerce_question(request.question)
    if question is None:
        raise HTTPException(status_code=422, detail="Question record has no usable text")
    return await pipeline.render_question(question)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8010)
