# pyright: reportMissingTypeStubs=false
"""
Clinic Assistant Backend API

A FastAPI application providing the WhatsApp webhook and the companion web
view API for an LLM-powered assistant that clinicians use to manage patients,
appointments and clinic histories.

Features:
- Twilio WhatsApp webhook integration
- Conversation API for the companion web view
- PostgreSQL database with SQLAlchemy ORM
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import conversations, twilio_webhook
from core.constants import CORS_ORIGINS
from services.cleanup_scheduler import start_cleanup_scheduler, stop_cleanup_scheduler
from services.context_compactor import validate_compaction_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("🏥 Clinic Assistant API starting...")

# Fail fast if compaction could fold turns still inside the default context window
validate_compaction_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("🚀 Starting Clinic Assistant Backend API")

    # Note: Database sessions are created fresh for each scheduler run
    try:
        await start_cleanup_scheduler()
        logger.info("✅ Cleanup scheduler started")
    except Exception as e:
        logger.exception(f"❌ Failed to start cleanup scheduler: {e}")

    yield

    try:
        await stop_cleanup_scheduler()
        logger.info("🛑 Cleanup scheduler stopped")
    except Exception as e:
        logger.exception(f"❌ Error stopping cleanup scheduler: {e}")

    logger.info("🛑 Shutting down Clinic Assistant Backend API")


# Create FastAPI application
app = FastAPI(
    title="Clinic Assistant Backend",
    description="LLM-Powered WhatsApp Assistant for Clinicians",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for the companion web view
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    twilio_webhook.router,
    prefix="/api/whatsapp",
    tags=["whatsapp"],
    responses={
        403: {"description": "Invalid or unverifiable webhook signature"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    conversations.router,
    prefix="/api/conversations",
    tags=["conversations"],
    responses={
        401: {"description": "Unauthorized"},
        404: {"description": "Resource not found"},
        500: {"description": "Internal server error"},
    },
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Clinic Assistant Backend API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


# Global exception handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Error interno del servidor", "type": "internal_error"},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions."""
    logger.warning(f"ValueError: {exc}")
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": "validation_error"},
    )
