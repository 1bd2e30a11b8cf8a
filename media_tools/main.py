import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from media_tools.api import router
from media_tools.api.upload_limits import UploadSizeMiddleware, request_budgets
from media_tools.config import Settings, get_settings
from media_tools.errors import MediaToolsError, MissingInput
from media_tools.logging import configure_logging
from media_tools.pipeline.job_pipeline import JobPipeline

logger = logging.getLogger(__name__)

LIVENESS_MESSAGE = "Unified Audio, Image, PDF & Video Tools Backend is running"


def create_app(settings: Settings | None = None, pipeline: JobPipeline | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    pipeline = pipeline or JobPipeline(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        pipeline.workspaces.sweep(settings.orphan_max_age_seconds)
        yield

    app = FastAPI(
        title="Media Tools API",
        version="1.0.0",
        description="Transient audio, image, PDF and video transformation backend",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.add_middleware(UploadSizeMiddleware, budgets=request_budgets(settings))
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.include_router(router)

    @app.exception_handler(MediaToolsError)
    async def media_tools_error(request: Request, exc: MediaToolsError) -> PlainTextResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        headers = {"X-Error-Kind": exc.kind}
        if isinstance(exc, MissingInput):
            headers["X-Missing-Field"] = exc.field
        return PlainTextResponse(str(exc), status_code=exc.status_code, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError) -> PlainTextResponse:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
            for error in exc.errors()
        )
        return PlainTextResponse(
            f"Invalid request: {details}", status_code=400, headers={"X-Error-Kind": "ValidationError"}
        )

    @app.get("/", response_class=PlainTextResponse, tags=["system"])
    def liveness() -> str:
        return LIVENESS_MESSAGE

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
