"""FastAPI application for the ACE operator console.

The app holds one :class:`~ace.cases.session.Session` on
``app.state.session``. Domain errors are mapped onto HTTP statuses:
unknown case 404, action not allowed in the current state (including
the verification soft gate and an incomplete QC checklist) 409,
bad input 400.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..cases.session import CaseNotFound, Session
from ..cases.state import ChecklistIncomplete, FinalizationBlocked, InvalidTransition
from ..utils.logging import get_logger
from .routes import router

logger = get_logger(__name__)


def create_app(session: Optional[Session] = None) -> FastAPI:
    """Build the app around ``session`` (a fresh one by default)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "session", None) is None:
            app.state.session = Session()
        yield
        await app.state.session.scheduler.cancel_all()
        await app.state.session.invoker.close()

    app = FastAPI(
        title="ACE Citation Extractor",
        description="Extraction, verification and QC of arXiv paper metadata",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.session = session
    app.include_router(router)

    @app.exception_handler(CaseNotFound)
    async def _not_found(request: Request, exc: CaseNotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(FinalizationBlocked)
    async def _blocked(request: Request, exc: FinalizationBlocked) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc), "requires_override": True})

    @app.exception_handler(ChecklistIncomplete)
    async def _unchecked(request: Request, exc: ChecklistIncomplete) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"detail": str(exc), "missing_critical": [item.value for item in exc.missing]},
        )

    @app.exception_handler(InvalidTransition)
    async def _conflict(request: Request, exc: InvalidTransition) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def _bad_value(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

    return app


app = create_app()


def start_server(host: str = "127.0.0.1", port: int = 8000, reload: bool = False) -> None:
    """Start the Uvicorn web server.

    Parameters
    ----------
    host: str
        Host to bind the server to. Defaults to ``127.0.0.1``.
    port: int
        Port to listen on. Defaults to 8000.
    reload: bool
        Whether to enable auto-reload. Useful during development.
    """
    logger.info(f"Starting ACE console at http://{host}:{port}")
    uvicorn.run("ace.web.app:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    start_server()
