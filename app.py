"""
Sports Reels Backend - Unified Application Entry Point
Mounts the generation service and the progress WebSocket under a single FastAPI application
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from services.generation.app import app as generation_app
from services.generation.factory import shutdown_queue
from services.websocket_progress import websocket_manager
from shared.utils import config, setup_logging

logger = setup_logging("sports-reels-backend")


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    logger.info("Shutting down generation queue")
    await shutdown_queue()


app = FastAPI(
    title="Sports Reels Backend API",
    description="""
    Unified API for queued generation of narrated sports reels.

    All endpoints are documented below. Service routes are organized by tag.
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Health",
            "description": "Service health and status endpoints",
        },
        {
            "name": "Generation",
            "description": "Reel generation queue - mounted at /api/v1/generation",
        },
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get("allowed_origins", ["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes to exclude (internal FastAPI docs routes)
EXCLUDED_PATHS = {"/openapi.json", "/docs", "/docs/oauth2-redirect", "/redoc"}

# Include Generation routes with prefix
for route in generation_app.routes:
    if hasattr(route, "path") and hasattr(route, "endpoint"):
        if route.path in EXCLUDED_PATHS:
            continue
        route_kwargs = {
            "path": f"/api/v1/generation{route.path}",
            "endpoint": route.endpoint,
            "methods": route.methods,
            "tags": ["Generation"],
        }
        if hasattr(route, "name"):
            route_kwargs["name"] = f"generation_{route.name}"
        if hasattr(route, "response_model"):
            route_kwargs["response_model"] = route.response_model
        if getattr(route, "status_code", None):
            route_kwargs["status_code"] = route.status_code
        app.add_api_route(**route_kwargs)

# Locally stored reels are served from here when no CDN is configured
if not config.get("cdn_base_url"):
    app.mount(
        "/media",
        StaticFiles(directory=config.get("media_root", "/app/media"), check_dir=False),
        name="media",
    )


@app.websocket("/ws/progress")
async def websocket_progress_endpoint(websocket: WebSocket):
    """WebSocket endpoint for generation progress updates."""
    client_id = websocket.query_params.get("client_id")
    assigned_client_id = await websocket_manager.connect(websocket, client_id)
    await websocket.send_json({"event": "connected", "client_id": assigned_client_id})

    try:
        while True:
            message = await websocket.receive_json()
            action = message.get("action")

            if action == "subscribe":
                job_id = message.get("job_id")
                if not job_id:
                    await websocket.send_json({"event": "error", "message": "Missing job_id for subscribe"})
                    continue
                latest = await websocket_manager.subscribe(assigned_client_id, job_id)
                await websocket.send_json({"event": "subscribed", "job_id": job_id})
                if latest is not None:
                    await websocket.send_json(latest)
            elif action == "unsubscribe":
                job_id = message.get("job_id")
                await websocket_manager.unsubscribe(assigned_client_id, job_id)
                await websocket.send_json({"event": "unsubscribed", "job_id": job_id})
            elif action == "ping":
                await websocket.send_json({"event": "pong"})
            else:
                await websocket.send_json({"event": "error", "message": f"Unknown action: {action}"})
    except WebSocketDisconnect:
        await websocket_manager.disconnect(assigned_client_id)
    except Exception:
        await websocket_manager.disconnect(assigned_client_id)
        raise


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint with service information and API navigation"""
    return {
        "service": "Sports Reels Backend API",
        "version": "1.0.0",
        "services": {
            "generation": {
                "base_url": "/api/v1/generation",
                "health": "/api/v1/generation/health",
                "generate": "/api/v1/generation/generate",
                "status": "/api/v1/generation/generate/status",
                "queue": "/api/v1/generation/generate/queue",
            },
            "progress": {
                "websocket": "/ws/progress",
            },
        },
        "documentation": {
            "swagger_ui": "/docs",
            "redoc": "/redoc",
            "openapi_json": "/openapi.json",
        },
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for all services"""
    return {
        "status": "healthy",
        "services": {
            "api_gateway": "operational",
            "generation": "operational",
            "progress_websocket": "operational",
        },
    }


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting Sports Reels Backend on http://0.0.0.0:8000")
    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
