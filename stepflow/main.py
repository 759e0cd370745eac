"""
StepFlow - FastAPI Application Entry Point.

Exposes the registered workflows over HTTP and WebSocket.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from stepflow.config import settings
from stepflow.api.routes import runs, websocket, workflows
from stepflow.workflows import register_example_workflows


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    await register_example_workflows()
    if not hasattr(app.state, "collaborators"):
        app.state.collaborators = {}

    yield

    # Shutdown
    logger.info("Shutting down...")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="""
## StepFlow API

Run multi-step workflows built from named steps over a typed shared state.

### Features
- **Steps**: Python functions that mutate shared state and pick the next step
- **Self-loops**: A step can re-run itself until it decides to stop
- **Strict steps**: Preconditions on the state checked before a step runs
- **Nesting**: Whole workflows used as a single step of another
- **Real-time Updates**: WebSocket streaming of lifecycle events

### Quick Start
1. List workflows: `GET /workflows`
2. Run one: `POST /workflows/{key}/run`
3. Check a run: `GET /runs/{run_id}`
4. Cancel a run: `POST /runs/{run_id}/cancel`
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(workflows.router)
app.include_router(runs.router)
app.include_router(websocket.router)


# ============================================================
# Root Endpoints
# ============================================================

@app.get("/", tags=["Root"])
async def root():
    """API root - returns basic info and links."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "An async workflow step-graph engine",
        "docs": "/docs",
        "redoc": "/redoc",
        "endpoints": {
            "workflows": "/workflows",
            "runs": "/runs",
            "websocket_run": "/ws/run/{key}",
            "websocket_subscribe": "/ws/subscribe/{run_id}",
        },
    }


@app.get("/health", tags=["Root"])
async def health():
    """Health check endpoint."""
    from stepflow.storage.memory import run_storage, workflow_registry

    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "workflows_count": len(workflow_registry),
        "runs_count": len(run_storage),
    }


# ============================================================
# Error Handlers
# ============================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception(f"Unhandled error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
        },
    )
