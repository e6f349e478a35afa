from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from . import __version__
from .api.routes import router as api_router
from .core.config import Settings, get_settings
from .core.errors import OrchestratorError
from .core.logging import configure_logging, get_logger
from .dependencies import ServiceContainer, build_container

logger = get_logger(name=__name__)


def create_app(settings: Settings | None = None, *, container: ServiceContainer | None = None) -> FastAPI:
    settings = settings or (container.settings if container is not None else get_settings())
    configure_logging(settings.observability.log_level)

    @asynccontextmanager
    async def app_lifespan(app: FastAPI):
        owned = container is None
        app.state.container = container if container is not None else build_container(settings)
        logger.info("app_started", environment=settings.environment)
        try:
            yield
        finally:
            if owned:
                await app.state.container.aclose()
            logger.info("app_stopped")

    app = FastAPI(title="bizflow", version=__version__, lifespan=app_lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.frontend_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.exception_handler(OrchestratorError)
    async def orchestrator_error_handler(request: Request, exc: OrchestratorError) -> JSONResponse:
        logger.error("orchestrator_error", code=exc.code, error=str(exc), path=request.url.path)
        return JSONResponse(status_code=502, content={"code": exc.code, "detail": str(exc)})

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    if settings.observability.prometheus_enabled:

        @app.get("/metrics", tags=["observability"])
        async def metrics() -> Response:
            return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()
