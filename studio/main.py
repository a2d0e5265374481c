"""
Product Media Studio API
FastAPI Backend Entry Point
"""

import io
import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from studio.core.config import settings
from studio.core.database import init_db
from studio.api import analytics, generate, intents, jobs
from studio.api.deps import get_storage
from studio.services.storage import StorageService

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".mp4": "video/mp4",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    logger.info(f"Starting {settings.APP_NAME}...")
    init_db()
    yield
    logger.info(f"Shutting down {settings.APP_NAME}...")


app = FastAPI(
    title=settings.APP_NAME,
    description="Batch AI product photography and video generation with lineage tracking",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(jobs.router, prefix="/api/v1/jobs", tags=["Jobs"])
app.include_router(generate.router, prefix="/api/v1", tags=["Generation"])
app.include_router(intents.router, prefix="/api/v1/intents", tags=["Intents"])
app.include_router(analytics.router, prefix="/api/v1/analytics", tags=["Analytics"])


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint for monitoring.
    Returns detailed status of critical services.
    """
    status = {
        "status": "healthy",
        "version": "0.1.0",
        "environment": {
            "storage": "gcs" if settings.USE_GCS else ("local" if settings.USE_LOCAL_STORAGE else "s3"),
            "database": settings.DATABASE_URL.split(":", 1)[0],
            "dispatch": settings.JOB_DISPATCH_MODE,
        },
        "services": {}
    }

    # Check database connection
    try:
        from studio.core.database import SessionLocal
        from sqlalchemy import text
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        status["services"]["database"] = "ok"
    except Exception as e:
        status["services"]["database"] = f"error: {str(e)}"
        status["status"] = "degraded"

    # Redis only matters when jobs go through RQ
    if settings.JOB_DISPATCH_MODE == "queue":
        from studio.core.redis import redis_health_check
        redis_status = redis_health_check()
        if redis_status.get("connected"):
            status["services"]["redis"] = "ok"
            status["services"]["redis_version"] = redis_status.get("redis_version")
        else:
            status["services"]["redis"] = f"error: {redis_status.get('error', 'not connected')}"
            status["status"] = "degraded"

    # Check storage availability
    try:
        if settings.USE_GCS:
            from google.cloud import storage
            client = storage.Client(project=settings.GCP_PROJECT_ID)
            if not client.bucket(settings.GCS_BUCKET).exists():
                raise RuntimeError(f"bucket {settings.GCS_BUCKET} missing")
        elif settings.USE_LOCAL_STORAGE:
            if not os.path.isdir(settings.LOCAL_STORAGE_PATH):
                raise RuntimeError(f"{settings.LOCAL_STORAGE_PATH} missing")
        status["services"]["storage"] = "ok"
    except Exception as e:
        status["services"]["storage"] = f"error: {str(e)}"
        status["status"] = "degraded"

    return status


@app.get("/files/{file_path:path}", tags=["Files"])
async def serve_file(file_path: str, storage: StorageService = Depends(get_storage)):
    """
    Serve stored files (images, videos).
    This proxies files from GCS/S3/local storage to the frontend.
    """
    try:
        file_bytes = await storage.get_file(file_path)
    except Exception as e:
        raise HTTPException(status_code=404, detail=f"File not found: {str(e)}")

    content_type = CONTENT_TYPES.get(os.path.splitext(file_path)[1].lower(), "application/octet-stream")
    return StreamingResponse(
        io.BytesIO(file_bytes),
        media_type=content_type,
        headers={"Cache-Control": "public, max-age=3600"}
    )


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": settings.APP_NAME,
        "docs": "/docs",
        "health": "/health",
    }
