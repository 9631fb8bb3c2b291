"""
Demoflow — product demo authoring, sharing and playback analytics.
Main application entry point.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.analytics import router as analytics_router
from app.api.demos import router as demos_router
from app.api.share_links import router as share_links_router
from app.api.tracking import router as tracking_router
from app.api.viewer import router as viewer_router
from app.middleware.security import SecurityHeadersMiddleware
from app.models.database import dispose_engine
from app.config import get_settings

import structlog

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer() if get_settings().debug else structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("demoflow_starting", base_url=get_settings().base_url)
    yield
    logger.info("demoflow_shutting_down")
    await dispose_engine()


app = FastAPI(
    title="Demoflow",
    description="Step-based product demos: share links, playback tracking, engagement analytics.",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if get_settings().debug else None,
    redoc_url="/redoc" if get_settings().debug else None,
    openapi_url="/openapi.json" if get_settings().debug else None,
)

# Security headers on every response
app.add_middleware(SecurityHeadersMiddleware)

# CORS: the player and editor run on the web app's origin
ALLOWED_ORIGINS = ["*"] if get_settings().debug else [
    "https://demoflow.app",
    "https://www.demoflow.app",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)

# --- Routes ---
app.include_router(viewer_router)
app.include_router(tracking_router)
app.include_router(demos_router)
app.include_router(share_links_router)
app.include_router(analytics_router)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "demoflow", "version": VERSION}
