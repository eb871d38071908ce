"""TaskFlow FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
import uvicorn

from taskflow.config import settings
from taskflow.database import connect_db, close_db
from taskflow.scheduler import jobs
from taskflow.utils.errors import TaskFlowError

# Import routers
from taskflow.auth.router import router as auth_router
from taskflow.workspaces.router import router as workspaces_router
from taskflow.spaces.router import router as spaces_router
from taskflow.boards.router import router as boards_router
from taskflow.columns.router import router as columns_router
from taskflow.tasks.router import router as tasks_router
from taskflow.checklists.router import router as checklists_router
from taskflow.comments.router import router as comments_router
from taskflow.invitations.router import router as invitations_router
from taskflow.notifications.router import router as notifications_router
from taskflow.reminders.router import router as reminders_router
from taskflow.analytics.router import router as analytics_router
from taskflow.permissions.router import router as roles_router
from taskflow.realtime.router import router as realtime_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("Starting %s", settings.APP_NAME)
    await connect_db()
    if settings.SCHEDULER_ENABLED:
        jobs.start()
    logger.info("%s is ready", settings.APP_NAME)
    yield

    jobs.stop()
    await close_db()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    description="Multi-tenant workspaces, spaces, boards and tasks",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, message: str, headers: dict = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


@app.exception_handler(TaskFlowError)
async def taskflow_error_handler(request: Request, exc: TaskFlowError):
    return _error(exc.status_code, exc.message)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return _error(422, message)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error")


# Register routers
app.include_router(auth_router, prefix="/api")
app.include_router(workspaces_router, prefix="/api")
app.include_router(spaces_router, prefix="/api")
app.include_router(boards_router, prefix="/api")
app.include_router(columns_router, prefix="/api")
app.include_router(tasks_router, prefix="/api")
app.include_router(checklists_router, prefix="/api")
app.include_router(comments_router, prefix="/api")
app.include_router(invitations_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(reminders_router, prefix="/api")
app.include_router(analytics_router, prefix="/api")
app.include_router(roles_router, prefix="/api")
app.include_router(realtime_router)  # WebSocket routes (no prefix)


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
        "docs": "/docs",
    }


if __name__ == "__main__":
    uvicorn.run(
        "taskflow.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
