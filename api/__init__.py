"""REST API module for the tool rental marketplace.

This module provides HTTP endpoints for:
- Registration, login and user records
- Creating and managing tools and their manuals
- Creating, pausing and searching listings
- Searching and creating tool makers and categories
- Direct messages, with live delivery via WebSocket
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from database import init_db, close as db_close
from geocoding import AddressGeocoder
from messages import MessageBus

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(manage_db: bool = True) -> FastAPI:
    """Build the application.

    Args:
        manage_db: Open the database pool on startup and close it on shutdown
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown events."""
        logger.info("Initializing API...")
        if manage_db:
            await init_db()

        app.state.message_bus = MessageBus()
        app.state.geocoder = AddressGeocoder()

        yield

        logger.info("Shutting down API...")
        if manage_db:
            await db_close()

    app = FastAPI(
        title="Toolshed API",
        description="REST API for renting tools from your neighbours",
        version="1.0.0",
        lifespan=lifespan
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        return {
            "name": "Toolshed API",
            "version": "1.0.0",
            "status": "running"
        }

    from .auth import router as auth_router
    from .tools import router as tools_router
    from .listings import router as listings_router, details_router
    from .search import router as search_router
    from .inbox import router as inbox_router

    app.include_router(auth_router)
    app.include_router(tools_router)
    app.include_router(listings_router)
    app.include_router(details_router)
    app.include_router(search_router)
    app.include_router(inbox_router)

    return app


app = create_app()
