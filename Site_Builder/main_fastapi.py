"""
FastAPI Main module for Site Builder
Streaming website generation and session management endpoints
"""

import os
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from .context_store import ContextStore, SnapshotFormatError
from .events import QueueEmitter, format_sse, is_terminal
from .generator import WebsiteGenerator
from .models import DEFAULT_MODEL, ConfigurationError, TokenManager, UnknownModelError
from .preview import build_preview_document

logger = logging.getLogger(__name__)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str
    session_id: str = Field(default="default", alias="sessionId")
    reset_context: bool = Field(default=False, alias="resetContext")
    model: str = DEFAULT_MODEL
    context: Optional[Dict[str, Any]] = None


router = APIRouter()


def get_generator(request: Request) -> WebsiteGenerator:
    return request.app.state.generator


def get_store(request: Request) -> ContextStore:
    return get_generator(request).store


@router.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "message": "Site Builder API",
        "version": "1.0.0",
        "endpoints": {
            "generate": "/api/generate - Create or modify a website (server-sent events)",
            "models": "/api/v1/models - Available model backends",
            "sessions": "/api/v1/sessions/{session_id} - Current files, session info and history",
            "export": "/api/v1/sessions/{session_id}/export - Download a session snapshot",
            "import": "/api/v1/sessions/{session_id}/import - Restore a session snapshot",
            "reset": "/api/v1/sessions/{session_id}/reset - Start the session over",
            "preview": "/api/v1/sessions/{session_id}/preview - Live preview document",
        }
    }


@router.get("/api/v1/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


@router.get("/api/v1/models")
async def list_models(request: Request):
    generator = get_generator(request)
    return {
        "default": DEFAULT_MODEL,
        "models": [
            {"id": name, "model": backend.model, "configured": backend.is_configured()}
            for name, backend in generator.backends.items()
        ],
    }


@router.post("/api/generate")
async def generate_endpoint(body: GenerateRequest, request: Request):
    """Stream status events and the final result of one generation request"""
    generator = get_generator(request)

    if not body.prompt.strip():
        raise HTTPException(status_code=422, detail="Prompt is required")

    try:
        generator.check_model(body.model)
    except UnknownModelError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConfigurationError as e:
        logger.error("❌ %s", e)
        raise HTTPException(status_code=500, detail="AI service is not configured. Please check your API key.")

    seed_context = None
    if body.context and not body.reset_context:
        try:
            seed_context = ContextStore.parse_context(body.context)
        except SnapshotFormatError as e:
            raise HTTPException(status_code=400, detail=str(e))

    logger.info("🚀 Generate request for session %s: %s...", body.session_id, body.prompt[:100])

    async def generate():
        emitter = QueueEmitter()
        task = asyncio.create_task(generator.process_request(
            body.prompt, body.session_id, body.model, emit=emitter,
            reset_context=body.reset_context, context=seed_context,
        ))
        task.add_done_callback(lambda _: emitter.queue.put_nowait(None))
        try:
            while True:
                event = await emitter.get()
                if event is None:
                    break
                yield format_sse(event)
                if is_terminal(event):
                    break
        finally:
            # Client went away before the end: abandon the request uncommitted
            if not task.done():
                task.cancel()

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"}
    )


@router.get("/api/v1/sessions/{session_id}")
async def get_session(session_id: str, request: Request):
    """Current files, session info and history of a session"""
    store = get_store(request)
    if session_id not in store:
        raise HTTPException(status_code=404, detail="Session not found")
    return store.export_snapshot(session_id)


@router.get("/api/v1/sessions/{session_id}/export")
async def export_session(session_id: str, request: Request):
    store = get_store(request)
    if session_id not in store:
        raise HTTPException(status_code=404, detail="Session not found")
    return JSONResponse(
        store.export_snapshot(session_id),
        headers={"Content-Disposition": f'attachment; filename="website-session-{session_id}.json"'},
    )


@router.post("/api/v1/sessions/{session_id}/import")
async def import_session(session_id: str, request: Request):
    """Replace a session with an exported snapshot (raw JSON body)"""
    store = get_store(request)
    raw = await request.body()
    async with store.lock(session_id):
        try:
            store.import_snapshot(session_id, raw)
        except SnapshotFormatError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return {
        "status": "success",
        "sessionId": session_id,
        "sessionInfo": store.session_info(session_id).to_wire(),
    }


@router.post("/api/v1/sessions/{session_id}/reset")
async def reset_session(session_id: str, request: Request):
    store = get_store(request)
    async with store.lock(session_id):
        store.reset(session_id)
    return {"status": "success", "sessionId": session_id}


@router.get("/api/v1/sessions/{session_id}/preview", response_class=HTMLResponse)
async def preview_session(session_id: str, request: Request):
    store = get_store(request)
    context = store.get(session_id)
    if context is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return HTMLResponse(build_preview_document(context.current_files))


def create_app(generator: Optional[WebsiteGenerator] = None) -> FastAPI:
    app = FastAPI(
        title="Site Builder",
        description="AI-powered website scaffolding API",
        version="1.0.0"
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.generator = generator or WebsiteGenerator(ContextStore(), token_manager=TokenManager())
    app.include_router(router)
    return app


app = create_app()


# -------------------
# Run the application
# -------------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
