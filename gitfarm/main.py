"""
FastAPI Application Entry Point

Builds the GitFarm API: task management, commit jobs, GitHub helpers and the
cron trigger that drives the task runner.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from gitfarm.config import settings
from gitfarm.api.routes import commits, cron, health, repositories, tasks
from gitfarm.core.github.errors import GitHubAuthError
from gitfarm.core.ledger import InsufficientCreditsError
from gitfarm.core.scheduler.service import scheduler_service
from gitfarm.db.session import close_db, init_db
from gitfarm.monitoring.logging import RequestLoggingMiddleware, get_logger, setup_logging
from gitfarm.monitoring.metrics import initialize_metrics

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    initialize_metrics(settings.app_name, settings.app_version)
    await init_db()
    if settings.scheduler_enabled:
        await scheduler_service.start()
    logger.info("app_started", environment=settings.environment, scheduler=settings.scheduler_enabled)

    yield

    await scheduler_service.shutdown()
    await close_db()


async def github_auth_error_handler(request: Request, exc: GitHubAuthError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


async def insufficient_credits_handler(request: Request, exc: InsufficientCreditsError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        content={"detail": str(exc), "required": exc.required, "available": exc.available},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Scheduled synthetic GitHub commits with credit accounting",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(GitHubAuthError, github_auth_error_handler)
    app.add_exception_handler(InsufficientCreditsError, insufficient_credits_handler)

    if settings.prometheus_enabled:
        app.mount("/metrics", make_asgi_app())

    app.include_router(health.router, tags=["Health"])
    app.include_router(cron.router, prefix="/api/cron", tags=["Cron"])
    app.include_router(tasks.router, prefix=f"{settings.api_v1_prefix}/tasks", tags=["Tasks"])
    app.include_router(commits.router, prefix=f"{settings.api_v1_prefix}/commits", tags=["Commits"])
    app.include_router(
        repositories.router,
        prefix=f"{settings.api_v1_prefix}/github",
        tags=["GitHub"],
    )

    return app


app = create_app()
