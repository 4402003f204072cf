"""
File status tracker backend — dashboard API + background tracker service.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import ServiceSettings
from .monitoring import server as dashboard
from .persistence.errors import PersistenceError
from .persistence.manager import StatusStore
from .service import TrackerService

logger = logging.getLogger(__name__)


def create_app(
    store: Optional[StatusStore] = None,
    settings: Optional[ServiceSettings] = None,
    start_services: bool = True,
) -> FastAPI:
    """
    Create the dashboard application.

    Args:
        store: Status store (opened from settings.db_path if omitted)
        settings: Process settings (read from the environment if omitted)
        start_services: Run the tracker service for the lifetime of the app

    Returns:
        FastAPI application with app.state.store, .engine and .service set
    """
    settings = settings or ServiceSettings.from_env()
    store = store or StatusStore(db_path=settings.db_path)
    service = TrackerService(store, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_services:
            service.start()
        try:
            yield
        finally:
            if start_services:
                service.stop()

    app = FastAPI(title="File Status Tracker", version="1.0.0", lifespan=lifespan)

    # CORS middleware for dashboard frontend access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error(f"Store error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": f"Status store error: {exc}"})

    app.state.store = store
    app.state.engine = service.engine
    app.state.service = service

    app.include_router(dashboard.router)
    return app


def run_server(settings: Optional[ServiceSettings] = None) -> None:
    """Run the dashboard API and tracker service under uvicorn."""
    import uvicorn

    settings = settings or ServiceSettings.from_env()
    app = create_app(settings=settings)

    logger.info(f"Starting file status tracker on {settings.host}:{settings.port}")
    if settings.host == "0.0.0.0":
        logger.warning("LAN exposure is enabled. No authentication is configured.")

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
