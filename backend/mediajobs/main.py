"""Main FastAPI application."""

import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from mediajobs.config import settings
from mediajobs.database import AsyncSessionLocal, init_db
from mediajobs.routes import history, jobs, media, websocket
from mediajobs.services.history_service import HistoryService
from mediajobs.services.job_queue import JobQueue
from mediajobs.services.media_probe import MediaProbe
from mediajobs.services.orchestrator import TranscodeOrchestrator
from mediajobs.services.process_supervisor import ProcessSupervisor
from mediajobs.services.websocket_manager import WebSocketManager

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Ensure logging output if Uvicorn hijacked the root logger but didn't set level/handlers as expected
if not logging.getLogger().handlers:
    console = logging.StreamHandler()
    console.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logging.getLogger().addHandler(console)


def build_job_queue() -> JobQueue:
    """Wire supervisor, probe and orchestrator into a job queue from settings."""
    supervisor = ProcessSupervisor(
        executable=settings.FFMPEG_PATH,
        kill_grace=settings.KILL_GRACE_SECONDS,
        diagnostic_lines=settings.DIAGNOSTIC_TAIL_LINES,
    )
    probe = MediaProbe(executable=settings.FFPROBE_PATH, timeout=settings.PROBE_TIMEOUT_SECONDS)
    orchestrator = TranscodeOrchestrator(
        supervisor=supervisor,
        probe=probe,
        temp_dir=settings.TEMP_DIR,
        thumbnail_timeout=settings.THUMBNAIL_TIMEOUT_SECONDS,
    )
    return JobQueue(orchestrator, settings.queue_config())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    logger.info("Starting media job service...")

    # Clean slate: history only covers the current process lifetime
    if os.path.exists(settings.DATABASE_PATH):
        try:
            os.remove(settings.DATABASE_PATH)
            logger.info(
                f"Deleted existing database at {settings.DATABASE_PATH} for clean startup"
            )
        except Exception as e:
            logger.error(f"Failed to delete database: {e}")

    settings.ensure_directories()
    await init_db()
    logger.info("Database initialized")

    websocket_manager = WebSocketManager()
    history_service = HistoryService(AsyncSessionLocal)
    job_queue = build_job_queue()
    job_queue.add_listener(websocket_manager.on_queue_event)
    job_queue.add_listener(history_service.on_queue_event)

    app.state.websocket_manager = websocket_manager
    app.state.history_service = history_service
    app.state.job_queue = job_queue

    if not await job_queue.orchestrator.check_encoder():
        logger.warning(
            f"Encoder not usable at {settings.FFMPEG_PATH}; jobs will fail until it is installed"
        )

    await job_queue.start()

    yield

    # Shutdown
    logger.info("Shutting down media job service...")
    await job_queue.stop()
    settings.clean_temp_dir("shutdown")


# Create FastAPI app
app = FastAPI(
    title="Media Job Service",
    description="FFmpeg-backed media job queue with real-time progress tracking",
    version="1.0.0",
    lifespan=lifespan,
)

# Add GZip Middleware
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(jobs.router, prefix="/api/jobs", tags=["jobs"])
app.include_router(history.router, prefix="/api/history", tags=["history"])
app.include_router(media.router, prefix="/api", tags=["media"])
app.include_router(websocket.router, tags=["websocket"])


@app.get("/api/health")
async def health_check(request: Request):
    """Health check endpoint."""
    queue_status = request.app.state.job_queue.get_queue_status()

    return {
        "status": "healthy",
        "queue_size": queue_status["queue_size"],
        "active_job_ids": queue_status["active_job_ids"],
        "workers": queue_status["workers"],
    }


def run():
    """Console entry point."""
    uvicorn.run(
        "mediajobs.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
