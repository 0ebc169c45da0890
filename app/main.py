# main.py
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.base import BaseHTTPMiddleware

from app.blob_storage import BlobSink, build_sink
from app.config import Settings, get_settings
from app.crud import PostgresStorage
from app.database import DatabaseManager
from app.errors import AppError
from app.feed import FeedService
from app.routers import auth, users, videos
from app.storage import MemoryStorage, Storage

logger = logging.getLogger("app.main")


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request %s %s status=%s duration_ms=%d",
            request.method,
            request.url.path,
            response.status_code,
            int((time.perf_counter() - start) * 1000),
        )
        return response


def build_storage(settings: Settings) -> Storage:
    if settings.storage_backend == "postgres":
        return PostgresStorage(
            DatabaseManager(settings.database_url, settings.db_pool_min_size, settings.db_pool_max_size),
            max_video_duration=settings.max_video_duration,
        )
    return MemoryStorage(seed=settings.seed_sample_data)


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[Storage] = None,
    sink: Optional[BlobSink] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    storage = storage or build_storage(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await storage.open()
        logger.info("Storage ready (%s)", type(storage).__name__)
        yield
        await storage.close()

    app = FastAPI(
        title="FunLife Videos API",
        description="Short-video feed with likes, comments and follows",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.storage = storage
    app.state.feed = FeedService(storage, max_video_duration=settings.max_video_duration)
    app.state.sink = sink or build_sink(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Validation error", "errors": errors},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Server error"},
        )

    app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
    app.include_router(users.router, prefix="/api/users", tags=["Users"])
    app.include_router(videos.router, prefix="/api/videos", tags=["Videos"])

    if settings.blob_backend == "local":
        Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
        app.mount(
            settings.upload_url_prefix,
            StaticFiles(directory=settings.upload_dir),
            name="uploads",
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
