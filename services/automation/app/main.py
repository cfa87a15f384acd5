"""FastAPI application entrypoint."""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api import costs, jobs, workflows
from .config import get_settings
from .domain.cost_monitor import CostMonitor
from .domain.pipeline import AutomationPipeline, create_default_pipeline
from .observability.logging import configure_logging
from .observability.otel import configure_telemetry
from .persistence.db import dispose_engine, init_db
from .persistence.sinks import SqlJobStore


def create_app(
    pipeline: AutomationPipeline | None = None,
    store: SqlJobStore | None = None,
    cost_monitor: CostMonitor | None = None,
) -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="Automation Workflow Generator",
        version="1.1.0",
        openapi_version="3.1.0",
        docs_url="/docs",
        redoc_url=None,
    )

    configure_logging()
    configure_telemetry(settings)

    store = store or SqlJobStore()
    cost_monitor = cost_monitor or CostMonitor(settings.budget)
    app.state.store = store
    app.state.cost_monitor = cost_monitor
    app.state.pipeline = pipeline or create_default_pipeline(
        store, store, store, settings=settings, cost_monitor=cost_monitor
    )

    @app.on_event("startup")
    async def _startup() -> None:  # pragma: no cover - FastAPI lifecycle
        await init_db()

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # pragma: no cover - FastAPI lifecycle
        await app.state.pipeline.close()
        await dispose_engine()

    @app.exception_handler(Exception)
    async def _generic_exception_handler(request: Request, exc: Exception):  # pragma: no cover - fallback
        return JSONResponse(
            status_code=500,
            content={
                "error": "InternalServerError",
                "message": str(exc),
                "remediation": "Check the worker logs for the job id",
            },
        )

    app.include_router(jobs.router)
    app.include_router(workflows.router)
    app.include_router(costs.router)

    @app.get("/healthz")
    async def healthcheck():
        return {"status": "ok", "environment": settings.environment}

    return app


app = create_app()


__all__ = ["app", "create_app"]
