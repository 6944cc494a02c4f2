"""FastAPI application setup."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from repomerge.api.dependencies import (
    close_event_manager,
    close_orchestrator,
    close_state_store,
    init_event_manager,
    init_orchestrator,
    init_state_store,
)
from repomerge.api.models import APIResponse
from repomerge.api.routes import copy_plan, events, runs, settings
from repomerge.config import Settings
from repomerge.logging import setup_logging
from repomerge.pipeline.exceptions import ConfigurationError
from repomerge.selection.exceptions import PatternError
from repomerge.state_store import RunNotFoundError, StateStoreError

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    from repomerge.orchestrator import Orchestrator  # noqa: PLC0415
    from repomerge.providers import GitHubSourceProvider, GitLabTargetProvider  # noqa: PLC0415

    config: Settings = app.state.settings
    if app.state.configure_logging:
        setup_logging()

    # Startup
    store = init_state_store(config.db_path)
    if config.retention_days > 0:
        store.cleanup_old_runs(days=config.retention_days)
    event_manager = init_event_manager()
    source = GitHubSourceProvider(base_url=config.github_api_url)
    target = GitLabTargetProvider(
        verify_ssl=config.gitlab_verify_ssl,
        git_user_name=config.git_user_name,
        git_user_email=config.git_user_email,
    )
    orchestrator = Orchestrator(
        state_store=store,
        source_provider=source,
        target_provider=target,
        event_manager=event_manager,
        work_root=config.work_root,
        preview_root=config.preview_root,
    )
    init_orchestrator(orchestrator)

    yield
    # Shutdown
    close_orchestrator()
    source.close()
    target.close()
    close_event_manager()
    close_state_store()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=APIResponse[None](data=None, error=message).model_dump(),
    )


def create_app(
    db_path: str | None = None,
    work_root: str | None = None,
    settings_override: Settings | None = None,
    configure_logging: bool = False,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_path: SQLite database path, overriding REPOMERGE_DB_PATH.
        work_root: Per-run working directory root, overriding REPOMERGE_WORK_ROOT.
        settings_override: Complete settings; environment is not read when given.
        configure_logging: Install the rotating file log handler on startup.
    """
    config = settings_override or Settings.from_env()
    if db_path is not None:
        config.db_path = db_path
    if work_root is not None:
        config.work_root = Path(work_root)

    app = FastAPI(
        title="repomerge API",
        description="REST API for repomerge - GitHub to GitLab merge pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store config for lifespan manager
    app.state.settings = config
    app.state.configure_logging = configure_logging

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        _request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))

    @app.exception_handler(PatternError)
    async def pattern_error_handler(_request: Request, exc: PatternError) -> JSONResponse:
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))

    @app.exception_handler(RunNotFoundError)
    async def run_not_found_handler(_request: Request, _exc: RunNotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, "Run not found")

    @app.exception_handler(StateStoreError)
    async def state_store_error_handler(_request: Request, _exc: StateStoreError) -> JSONResponse:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    # Include routers
    app.include_router(runs.router, prefix="/api/v1")
    app.include_router(copy_plan.router, prefix="/api/v1")
    app.include_router(settings.router, prefix="/api/v1")
    app.include_router(events.router, prefix="/api/v1")

    return app


# Default app instance
app = create_app(configure_logging=True)
