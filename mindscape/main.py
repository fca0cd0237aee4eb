"""
Mindscape — Mind Map Engine
============================
FastAPI entry point.
  • Global exception handler: never crashes, always returns JSON
  • /api/v1/generate: topic → mind map, or topic + nodeId → expansion
  • /api/v1/export/*: Markdown / JSON downloads of a finished map
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mindscape.api.v1.endpoints.mindmap import router as mindmap_router
from mindscape.core.config import settings
from mindscape.schemas.mindmap import ErrorResponse

# ── Logging ──────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
)
logger = logging.getLogger(__name__)

# ── App ──────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Mindscape — Mind Map Engine",
    description=(
        "Turns a free-text topic into an expandable, hierarchical mind map.\n"
        "Send a topic → receive a tree; send a node id → receive its new children."
    ),
    version="1.0.0",
    responses={500: {"model": ErrorResponse}},
)


# ── Global Exception Handler ────────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all: every unhandled exception returns a clean JSON envelope."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    body = ErrorResponse(
        status="error",
        message="An internal server error occurred.",
        detail=str(exc),
    )
    return JSONResponse(status_code=500, content=body.model_dump())


# ── CORS ─────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Health Check ─────────────────────────────────────────────────────────────
@app.get("/", tags=["System"])
async def health_check():
    return {
        "status": "operational",
        "service": "Mindscape Mind Map Engine",
        "version": app.version,
        "backend": "local" if settings.USE_LOCAL_MODELS else "remote",
    }


app.include_router(mindmap_router, prefix="/api/v1", tags=["Mind Map"])

_backend = f"local ({settings.LOCAL_MODEL})" if settings.USE_LOCAL_MODELS else f"remote ({settings.AI_PROVIDER})"
logger.info(f"[STARTUP] ✓ Mind map engine ready, backend: {_backend}")
