"""FastAPI application entry point."""
import logging
import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app import database
from app.config import settings
from app.errors import CaseFilesError
from app.logging_config import configure_logging
from app.models import Base
from app.routes.cases import router as cases_router
from app.routes.files import router as files_router
from app.services.file_storage import FileStorageService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and the shared storage service on startup."""
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.storage = FileStorageService(settings.FILE_STORAGE_PATH, settings.STAGING_DIR_NAME)
    logger.info("File storage root: %s", app.state.storage.base_path)

    yield

    await database.engine.dispose()


async def handle_case_files_error(request: Request, exc: CaseFilesError):
    """Render pipeline errors as {success: false, error}."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )


async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            "%s %s failed after %.1fms",
            request.method, request.url.path, (time.perf_counter() - started) * 1000,
        )
        raise
    logger.info(
        "%s %s %d %.1fms",
        request.method, request.url.path, response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    return response


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Case Files API",
        version="1.0.0",
        description="Patient cases and their medical image files.",
        lifespan=lifespan,
    )

    # CORS
    origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_requests)
    app.add_exception_handler(CaseFilesError, handle_case_files_error)

    @app.get("/api/health")
    async def health_check():
        """Verify API and database connectivity."""
        try:
            async for db in database.get_db():
                await db.execute(text("SELECT 1"))
                return {"status": "ok", "database": "connected"}
        except Exception as e:
            return {"status": "error", "database": str(e)}

    app.include_router(cases_router)
    app.include_router(files_router)
    return app


app = create_app()
