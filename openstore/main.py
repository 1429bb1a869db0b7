# openstore/main.py
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.responses import error, generic_failure, submission_failure
from .api.v1 import apps, downloads, health, icons, manage
from .core.config import get_settings
from .core.database import init_db
from .core.logging import configure_logging
from .domain import repos
from .domain.errors import SubmissionError
from .domain.models import ADMIN


def bootstrap_admin() -> None:
    """Make sure the configured administrator exists with the configured key."""
    s = get_settings()
    if not s.ADMIN_API_KEY:
        return
    repos.get_repo().upsert_user(s.ADMIN_USER_ID, s.ADMIN_NAME, ADMIN, s.ADMIN_API_KEY)
    logger.info("Administrator {} is ready", s.ADMIN_USER_ID)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SubmissionError)
    async def on_submission_error(request: Request, exc: SubmissionError):
        return submission_failure(exc, generic_failure(request.method))

    @app.exception_handler(StarletteHTTPException)
    async def on_http_error(request: Request, exc: StarletteHTTPException):
        return error(str(exc.detail), exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def on_validation_error(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        where = ".".join(str(p) for p in first.get("loc", ()))
        return error(f"Invalid request: {where} {first.get('msg', '')}".strip(), 400)

    @app.exception_handler(Exception)
    async def on_unexpected_error(request: Request, exc: Exception):
        logger.opt(exception=exc).error("Unhandled error on {} {}", request.method, request.url.path)
        return error(generic_failure(request.method), 500)


def _mount_local_blobs(app: FastAPI) -> None:
    s = get_settings()
    if s.STORAGE_BACKEND != "local":
        return
    mount_path = urlparse(s.BLOB_BASE_URL).path.rstrip("/")
    if not mount_path:
        return
    app.mount(mount_path, StaticFiles(directory=s.BLOB_ROOT, check_dir=False), name="blobs")


def create_app() -> FastAPI:
    configure_logging()
    s = get_settings()
    app = FastAPI(title=s.APP_NAME, version="1.0.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)

    @app.on_event("startup")
    def startup_event():
        init_db()
        bootstrap_admin()
        logger.info("{} worker {} started ({})", s.APP_NAME, s.WORKER_ID, s.ENV)

    app.include_router(apps.router, tags=["apps"])
    app.include_router(manage.router, tags=["manage"])
    app.include_router(downloads.router, tags=["downloads"])
    app.include_router(icons.router, tags=["icons"])
    app.include_router(health.router, tags=["health"])
    _mount_local_blobs(app)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("openstore.main:app", host="0.0.0.0", port=8080)
