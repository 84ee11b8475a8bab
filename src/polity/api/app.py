"""FastAPI application wiring for the governance engine."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from polity.api import routes
from polity.api.runtime import ApiState, build_state
from polity.config import get_settings
from polity.domain.errors import (
    Conflict,
    GovernanceError,
    InvalidProposal,
    NotFound,
    PermissionDenied,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[GovernanceError], int] = {
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    InvalidProposal: 422,
    NotFound: status.HTTP_404_NOT_FOUND,
    Conflict: status.HTTP_409_CONFLICT,
}


def status_for(exc: GovernanceError) -> int:
    for error_type in type(exc).__mro__:
        code = ERROR_STATUS.get(error_type)
        if code is not None:
            return code
    return status.HTTP_400_BAD_REQUEST


async def governance_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, GovernanceError)
    code = status_for(exc)
    logger.info("%s %s rejected (%d): %s", request.method, request.url.path, code, exc.reason)
    return JSONResponse(status_code=code, content={"detail": exc.reason})


def create_app(*, state_factory: Callable[[], ApiState] = build_state) -> FastAPI:
    """Instantiate the FastAPI application with routing and lifecycle hooks."""

    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        state = state_factory()
        app.state.api_state = state
        await state.startup()
        try:
            yield
        finally:
            await state.shutdown()

    app = FastAPI(title="Polity Governance API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(GovernanceError, governance_error_handler)
    app.include_router(routes.router)
    return app


app = create_app()
