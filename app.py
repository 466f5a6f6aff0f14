from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend import build_backend
from errors import CollabError
from repository import RoomRepository
from routers.collab import collab_router
from synchronizer import RoomSynchronizer
from constants import LOG_LEVEL, LOG_FILE
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app(synchronizer: Optional[RoomSynchronizer] = None) -> FastAPI:
    """Build the HTTP app. Without a synchronizer, one is wired to the configured store on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if synchronizer is not None:
            app.state.synchronizer = synchronizer
        else:
            app.state.synchronizer = RoomSynchronizer(RoomRepository(build_backend()))
        store = app.state.synchronizer.repository.store
        await store.connect()
        logger.info(f"Collaboration store ready: {type(store).__name__}, join policy={app.state.synchronizer.join_policy}")
        try:
            yield
        finally:
            await store.close()

    app = FastAPI(title="mindmap-collab", lifespan=lifespan)

    # Configure CORS to allow all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allow all origins
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.include_router(collab_router)

    @app.exception_handler(CollabError)
    async def collab_error_handler(request: Request, exc: CollabError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.kind}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(f"{request.method} {request.url.path} crashed: {exc}", exc_info=exc)
        error = CollabError("Internal server error")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    logger.info("FastAPI application initialized")
    return app


app = create_app()
