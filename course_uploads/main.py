"""Main application module for the course video upload service."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from course_uploads.adapters.storage import S3StorageAdapter
from course_uploads.api.errors import upload_error_handler
from course_uploads.api.middlewares.parse_internal_headers import parse_internal_headers_middleware
from course_uploads.api.uploads import router as uploads_router
from course_uploads.config import get_config
from course_uploads.errors import UploadError
from course_uploads.logging_config import setup_loki_logging
from course_uploads.orm import dispose_engine
from course_uploads.orm import initialize_engine
from course_uploads.utils import mask_database_url


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """FastAPI application lifespan handler."""
    try:
        app.state.config = get_config()
        config = app.state.config

        app.state.sqlalchemy_engine = initialize_engine(config.database_url)
        logger.info(f"SQLAlchemy async engine initialized for {mask_database_url(config.database_url)}")

        app.state.storage = S3StorageAdapter.from_config(config)
        logger.info(f"Storage adapter initialized bucket={config.s3_bucket} region={config.aws_region}")

        yield

    finally:
        try:
            await dispose_engine()
            logger.info("SQLAlchemy async engine disposed")
        except Exception:
            logger.exception("Error disposing SQLAlchemy engine")


def factory() -> FastAPI:
    """Factory function to create and configure the FastAPI application."""
    load_dotenv()
    config = get_config()
    setup_loki_logging(config, "api")

    app = FastAPI(
        title="Course Uploads",
        description="Resumable multipart uploads of course videos",
        docs_url="/docs" if config.enable_api_docs else None,
        redoc_url="/redoc" if config.enable_api_docs else None,
        lifespan=lifespan,
        debug=config.debug,
    )

    # Identity headers are set by the gateway after authentication
    app.middleware("http")(parse_internal_headers_middleware)

    app.add_exception_handler(UploadError, upload_error_handler)

    @app.get("/health", include_in_schema=False, response_class=JSONResponse)
    async def health():
        """Health check endpoint for monitoring."""
        return JSONResponse(content={"status": "healthy"})

    app.include_router(uploads_router, prefix="")

    return app


app = factory()
