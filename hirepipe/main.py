from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from hirepipe.api.router import api_router
from hirepipe.core.config import settings
from hirepipe.core.errors import PipelineError, ValidationError
from hirepipe.db.session import create_schema
from hirepipe.middleware.request_context import RequestContextMiddleware
from hirepipe.services.stage_events import StageEventBus

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger("hirepipe")


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    if exc.retryable:
        logger.warning(
            "pipeline_error",
            extra={
                "code": exc.code.value,
                "path": request.url.path,
                "request_id": getattr(request.state, "request_id", None),
            },
        )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [
        {"field": ".".join(str(part) for part in error.get("loc", ())), "message": error.get("msg", "")}
        for error in exc.errors()
    ]
    error = ValidationError("Request validation failed", details={"fields": fields})
    return await pipeline_error_handler(request, error)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_schema:
        await create_schema()
    yield
    await app.state.event_bus.close()


def create_app(event_bus: StageEventBus | None = None) -> FastAPI:
    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
    app.state.event_bus = event_bus or StageEventBus(settings.redis_url)

    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(PipelineError, pipeline_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "environment": settings.environment}

    app.include_router(api_router)
    return app


app = create_app()
