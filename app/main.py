# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the TaskStudio API.
# It configures the FastAPI application with middleware, routers, and handlers.
#
# Usage:
#   uvicorn app.main:app --reload
# =============================================================================

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.exceptions import (
    TaskStudioException,
    taskstudio_exception_handler,
    validation_exception_handler,
)
from app.routers import contact, download, health, images, tasks
from app.auth import routes as auth_routes
from app.websocket import CHANGES_CHANNEL, parse_change
from app.websocket import routes as websocket_routes
from core.events import ErrorEventBus, PermissionErrorReporter
from lib.realtime import ChangeHub

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def redis_change_listener(hub: ChangeHub) -> None:
    """
    Background task that relays Redis change notices into the ChangeHub.

    Every worker process runs one; a write made in any process thereby
    refreshes the live subscriptions of all of them.
    """
    import redis.asyncio as aioredis

    logger.info("Starting Redis change listener")

    redis_client = aioredis.from_url(settings.REDIS_URL)
    pubsub = redis_client.pubsub()

    try:
        await pubsub.subscribe(CHANGES_CHANNEL)

        async for message in pubsub.listen():
            if message["type"] != "message":
                continue

            change = parse_change(message["data"])
            if change is None:
                continue

            table, user_id = change
            notified = hub.notify(table, user_id)
            logger.debug(f"Change on {table} (user={user_id}) -> {notified} listeners")

    except asyncio.CancelledError:
        logger.info("Redis change listener cancelled")
        raise
    except Exception as e:
        logger.error(f"Redis change listener error: {e}")
    finally:
        try:
            await pubsub.unsubscribe(CHANGES_CHANNEL)
            await redis_client.aclose()
        except Exception as e:
            logger.debug(f"Redis listener cleanup failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    - Startup: create the diagnostic event bus and mount the permission error
      reporter, create the change hub and start relaying Redis notices into it
    - Shutdown: stop the relay and unmount the reporter
    """
    logger.info(f"Starting TaskStudio API in {settings.ENVIRONMENT} mode")
    logger.info(f"CORS origins: {settings.cors_origins_list}")

    app.state.error_bus = ErrorEventBus()
    app.state.change_hub = ChangeHub()

    # In development a permission error is raised loudly at the point it is reported
    reporter = PermissionErrorReporter(app.state.error_bus, raise_errors=settings.DEBUG)
    reporter.mount()

    listener_task = asyncio.create_task(redis_change_listener(app.state.change_hub))

    yield

    logger.info("Shutting down TaskStudio API")

    listener_task.cancel()
    try:
        await listener_task
    except asyncio.CancelledError:
        pass

    reporter.unmount()


# Create FastAPI application
app = FastAPI(
    title="TaskStudio API",
    description="""
## Tasks and AI Image Transformation

TaskStudio keeps a per-user task list and an image gallery in which every
picture is transformed by an image generation model from a text prompt.

### How It Works

1. **Sign up / sign in** - Email and password, returns an access token
2. **Manage tasks** - Create, edit, complete and delete tasks
3. **Transform images** - Upload a picture with a prompt; the original and the
   transformed version are stored side by side
4. **Watch live** - Connect to a WebSocket stream to receive a fresh snapshot
   whenever your data changes

### Quick Start

```bash
# 1. Sign in
curl -X POST http://localhost:8000/api/v1/auth/signin \\
  -H "Content-Type: application/json" \\
  -d '{"email": "me@example.com", "password": "secret123"}'

# 2. Create a task
curl -X POST http://localhost:8000/api/v1/tasks \\
  -H "Authorization: Bearer $TOKEN" \\
  -H "Content-Type: application/json" \\
  -d '{"title": "Buy milk"}'

# 3. Transform an image
curl -X POST http://localhost:8000/api/v1/images/transform \\
  -H "Authorization: Bearer $TOKEN" \\
  -F "file=@cat.png" -F "prompt=cyberpunk"
```
""",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Auth",
            "description": "Sign-up, sign-in and token verification",
        },
        {
            "name": "Tasks",
            "description": "The signed-in user's task list",
        },
        {
            "name": "Images",
            "description": "Image transformation and the image gallery",
        },
        {
            "name": "Contact",
            "description": "Contact form submissions",
        },
        {
            "name": "Download",
            "description": "Download relay for stored files",
        },
        {
            "name": "WebSocket",
            "description": "Live snapshots of tasks and images",
        },
        {
            "name": "Health",
            "description": "API health and readiness checks",
        },
    ],
)


# =============================================================================
# Middleware
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list if settings.is_production else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(TaskStudioException)
async def handle_taskstudio_exception(request: Request, exc: TaskStudioException):
    """Handle custom TaskStudio exceptions."""
    return await taskstudio_exception_handler(request, exc)


@app.exception_handler(RequestValidationError)
async def handle_validation_exception(request: Request, exc: RequestValidationError):
    return await validation_exception_handler(request, exc)


@app.exception_handler(Exception)
async def handle_general_exception(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
        }
    )


# =============================================================================
# Routers
# =============================================================================

API_ROUTERS = (
    (auth_routes.router, "/api/v1/auth", "Auth"),
    (health.router, "/api/v1", "Health"),
    (tasks.router, "/api/v1/tasks", "Tasks"),
    (images.router, "/api/v1/images", "Images"),
    (contact.router, "/api/v1/contact", "Contact"),
    (download.router, "/api/v1", "Download"),
)

for router, prefix, tag in API_ROUTERS:
    app.include_router(router, prefix=prefix, tags=[tag])

# WebSocket paths are not versioned
app.include_router(websocket_routes.router, tags=["WebSocket"])


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint - returns API info.
    """
    return {
        "name": "TaskStudio API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/v1/health",
    }
