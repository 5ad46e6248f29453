"""
Storefront Checkout Application

Checkout and payment orchestration service for the storefront UI.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from .core.config import settings
from .core.session import session_manager
from .routes import checkout_router, gateway_router

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Storefront Checkout starting up...")
    logger.info(f"Backend URL: {settings.backend_base_url}")
    logger.info(f"Currency: {settings.currency}")

    expiry_task = asyncio.create_task(
        session_manager.run_expiry(
            settings.session_expiry_interval_seconds,
            max_age_hours=settings.session_max_age_hours,
        )
    )

    yield

    logger.info("Storefront Checkout shutting down...")
    expiry_task.cancel()
    with suppress(asyncio.CancelledError):
        await expiry_task
    # Let background cart cleanups finish and close backend clients
    await session_manager.close_all()


# Create FastAPI app
app = FastAPI(
    title="Storefront Checkout",
    description="Checkout and payment orchestration for the storefront",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(checkout_router)
app.include_router(gateway_router)


@app.get("/")
async def home():
    """Service index"""
    return {
        "message": "Storefront Checkout API",
        "docs": "/docs",
        "endpoints": {
            "sessions": "/api/checkout/sessions",
            "reconciliation": "/api/checkout/reconciliation",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "storefront-checkout",
        "backend_configured": bool(settings.backend_base_url),
        "active_sessions": len(session_manager.sessions),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "storefront.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
