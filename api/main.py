"""FastAPI application factory and main entrypoint."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.config import Settings, get_settings
from api.exceptions import CitabilityError
from api.jobs import schedule_configured_brand
from api.logging import setup_logging
from engine.graph.knowledge_graph import KnowledgeGraph
from engine.graph.neo4j_store import Neo4jGraphStore
from engine.graph.store import GraphStore, InMemoryGraphStore
from engine.monitoring.alerts import AlertLog
from engine.monitoring.scheduler import ProbeScheduler
from engine.observation.budget import ProviderBudget
from engine.observation.providers import build_provider_registry

VERSION = "0.1.0"

logger = structlog.get_logger(__name__)


def build_graph_store(settings: Settings) -> GraphStore:
    """Graph store for the configured backend."""
    if settings.graph.backend == "neo4j":
        return Neo4jGraphStore(
            settings.graph.neo4j_uri,
            settings.graph.neo4j_user,
            settings.graph.neo4j_password,
        )
    return InMemoryGraphStore()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Connect the graph and schedule the configured brand; stop jobs and close on shutdown."""
    settings: Settings = app.state.settings
    graph: KnowledgeGraph = app.state.graph
    logger.info(
        "citation_api_starting",
        env=settings.env,
        providers=app.state.registry.names(),
        graph_backend=settings.graph.backend,
        version=VERSION,
    )

    if isinstance(graph.store, Neo4jGraphStore):
        await graph.store.connect()
    await graph.initialize()
    schedule_configured_brand(app)

    yield

    app.state.scheduler.stop_all()
    await graph.close()
    logger.info("citation_api_stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title="Citation Intelligence Engine",
        description="Measure and track how answer engines cite a brand",
        version=VERSION,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.registry = build_provider_registry(settings)
    app.state.gate = ProviderBudget.from_settings(settings)
    app.state.graph = KnowledgeGraph(
        build_graph_store(settings), ambiguity_policy=settings.graph.ambiguity_policy
    )
    app.state.scheduler = ProbeScheduler(settings.monitoring)
    app.state.alerts = AlertLog()

    # First added = last executed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from api.middleware import LoggingMiddleware, RequestIDMiddleware

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    from api.routers import health, v1

    app.include_router(health.router, prefix="/api")
    app.include_router(v1.router, prefix="/v1")

    return app


def _error_body(code: str, message: str, **extra: object) -> dict:
    return {"error": {"code": code, "message": message, **extra}}


def register_exception_handlers(app: FastAPI) -> None:
    """Register custom exception handlers."""

    @app.exception_handler(CitabilityError)
    async def citability_error_handler(request: Request, exc: CitabilityError) -> JSONResponse:
        logger.warning(
            "application_error",
            error_code=exc.code,
            message=exc.message,
            path=request.url.path,
        )
        extra = {"details": exc.details} if exc.details else {}
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message, **extra),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        first_error = errors[0] if errors else {"msg": "Validation error"}
        field = ".".join(str(loc) for loc in first_error.get("loc", [])[1:])

        logger.warning("request_validation_failed", path=request.url.path, errors=len(errors))
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_body(
                "validation_error",
                first_error.get("msg", "Validation error"),
                field=field or None,
            ),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("internal_error", "An unexpected error occurred"),
        )


app = create_app()
