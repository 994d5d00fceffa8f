"""REST API module for the data marketplace.

This module provides HTTP endpoints for:
- Password and wallet authentication
- Creating and managing dataset listings
- Uploading rows and files behind listings
- Public listing search, samples and data matching per seller
- System health monitoring
"""

import logging
from typing import Optional, Dict, Any
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from config import settings_conf
from database import init_db, close as db_close
from gateway import QueryGateway

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

def configure_logging(settings: Dict[str, Any]) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=getattr(logging, settings['log_level'], logging.INFO),
        format=LOG_FORMAT
    )

# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    logger.info("Initializing API...")
    owns_store = False
    if getattr(app.state, 'gateway', None) is None:
        store = await init_db(app.state.settings)
        app.state.gateway = QueryGateway.from_store(store, app.state.settings)
        owns_store = True

    yield

    # Shutdown
    logger.info("Shutting down API...")
    if owns_store:
        app.state.gateway = None
        await db_close()

async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Report malformed requests as 400 like core validation errors."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())}
    )

def create_app(
    gateway: Optional[QueryGateway] = None,
    settings: Optional[Dict[str, Any]] = None
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        gateway: Optional prebuilt gateway. If not provided, one is built
            over the configured store at startup.
        settings: Optional validated settings. If not provided, settings.conf is used.
    """
    settings = settings or settings_conf

    app = FastAPI(
        title="Data Monkey Gateway API",
        description="REST API for the Data Monkey data marketplace",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.gateway = gateway

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, replace with specific origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Import and include all routers
    from .auth import router as auth_router
    from .datasets import router as datasets_router
    from .data import router as data_router
    from .system import router as system_router

    app.include_router(auth_router)
    app.include_router(datasets_router)
    app.include_router(data_router)
    app.include_router(system_router)

    @app.get("/")
    async def root():
        return {
            "name": "Data Monkey Gateway API",
            "version": "1.0.0",
            "status": "running"
        }

    return app

app = create_app()

__all__ = ['app', 'create_app', 'configure_logging']
