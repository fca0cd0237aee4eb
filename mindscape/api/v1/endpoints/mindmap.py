import json
import asyncio
import logging
from functools import lru_cache
from typing import AsyncGenerator
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response, StreamingResponse

from mindscape.core.config import settings
from mindscape.schemas.mindmap import ErrorResponse, GenerateRequest, MindMap
from mindscape.services.export_service import export_filename, to_json, to_markdown
from mindscape.services.generator import GenerationError, MindMapGenerator, expansion_error_map
from mindscape.services.llm_service import LLMClient

logger = logging.getLogger(__name__)

router = APIRouter()


@lru_cache
def get_generator() -> MindMapGenerator:
    """One generator per process, configured from the loaded settings."""
    return MindMapGenerator(settings, LLMClient(settings))


# ── Helper: SSE Event Stream ─────────────────────────────────────────────────

async def _sse_wrapper(generator):
    """Wraps an async generator into SSE format."""
    try:
        async for chunk in generator:
            yield f"data: {chunk}\n\n"
        yield "data: [DONE]\n\n"
    except Exception as e:
        logger.error(f"SSE stream error: {e}")
        yield f"data: {json.dumps({'type': 'error', 'message': str(e)})}\n\n"
        yield "data: [DONE]\n\n"


async def _generate_events(
    generator: MindMapGenerator,
    request: GenerateRequest,
) -> AsyncGenerator[str, None]:
    stage = "Expanding subtopic..." if request.node_id else "Building mind map..."
    yield json.dumps({"type": "status", "message": stage, "progress": 10})

    timeout = generator.settings.AI_TIMEOUT_SECONDS
    try:
        result = await asyncio.wait_for(
            generator.generate(request.topic, request.node_id),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        if not request.node_id:
            yield json.dumps({"type": "error", "message": f"Generation timed out after {timeout}s."})
            return
        result = expansion_error_map(request.topic)
    except GenerationError as e:
        yield json.dumps({"type": "error", "message": str(e)})
        return

    yield json.dumps({"type": "status", "message": "Done ✓", "progress": 100})
    yield json.dumps({"type": "result", "data": result.model_dump(mode="json")})


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 1. GENERATE / EXPAND
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post(
    "/generate",
    response_model=MindMap,
    responses={502: {"model": ErrorResponse}, 504: {"model": ErrorResponse}},
)
async def generate_mindmap(
    request: GenerateRequest,
    generator: MindMapGenerator = Depends(get_generator),
):
    """
    Generate a mind map for `topic`, or, when `nodeId` is given, only the
    children of that node. A failed expansion still answers 200 with a
    single error node; a failed full generation answers 502.
    """
    timeout = generator.settings.AI_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(
            generator.generate(request.topic, request.node_id),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        if request.node_id:
            return expansion_error_map(request.topic)
        body = ErrorResponse(message=f"Generation timed out after {timeout}s.")
        return JSONResponse(status_code=504, content=body.model_dump())
    except GenerationError as e:
        body = ErrorResponse(message="Mind map generation failed.", detail=str(e))
        return JSONResponse(status_code=502, content=body.model_dump())


@router.post("/generate/stream")
async def generate_mindmap_stream(
    request: GenerateRequest,
    generator: MindMapGenerator = Depends(get_generator),
):
    """Stream generation progress via Server-Sent Events."""
    return StreamingResponse(
        _sse_wrapper(_generate_events(generator, request)),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 2. EXPORT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _attachment(filename: str) -> str:
    # headers are latin-1; non-ASCII topics go through the RFC 5987 form
    return f"attachment; filename*=UTF-8''{quote(filename)}"

@router.post("/export/markdown")
async def export_markdown(mind_map: MindMap):
    """Download the map as a Markdown document."""
    return Response(
        content=to_markdown(mind_map),
        media_type="text/markdown",
        headers={"Content-Disposition": _attachment(export_filename(mind_map, "md"))},
    )


@router.post("/export/json")
async def export_json(mind_map: MindMap):
    """Download the map as pretty-printed JSON."""
    return Response(
        content=to_json(mind_map),
        media_type="application/json",
        headers={"Content-Disposition": _attachment(export_filename(mind_map, "json"))},
    )
