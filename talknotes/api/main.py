from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from talknotes.api.routes.chat import router as chat_router
from talknotes.api.routes.sessions import router as sessions_router
from talknotes.api.routes.study import router as study_router
from talknotes.config import Settings, get_settings
from talknotes.errors import (
    InvalidRequestError,
    InvalidTransitionError,
    NotFoundError,
    TalknotesError,
    UpstreamServiceError,
)
from talknotes.sessions import SessionService, build_session_service

logger = logging.getLogger(__name__)

_STATUS_CODES: list[tuple[type[TalknotesError], int]] = [
    (NotFoundError, 404),
    (InvalidRequestError, 400),
    (InvalidTransitionError, 409),
    (UpstreamServiceError, 503),
]


async def _talknotes_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = 500
    for error_type, code in _STATUS_CODES:
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app(settings: Settings | None = None, service: SessionService | None = None) -> FastAPI:
    """Build the FastAPI app.

    When *service* is given it is used as-is and not closed on shutdown;
    otherwise one is built from *settings* when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app_settings = settings or get_settings()
        logging.basicConfig(
            level=app_settings.log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        owned = None
        if getattr(app.state, "service", None) is None:
            owned = build_session_service(app_settings)
            app.state.service = owned
        try:
            yield
        finally:
            if owned is not None:
                owned.close()
                app.state.service = None

    app = FastAPI(
        title="Talknotes API",
        description="Talk transcription, summaries and grounded chat",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:8501",
        ],
        allow_origin_regex=r"https://.*\.vercel\.app|http://localhost:\d+",
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TalknotesError, _talknotes_error_handler)

    app.include_router(sessions_router)
    app.include_router(chat_router)
    app.include_router(study_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    return app


app = create_app()


def serve() -> None:
    """Run the API with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    serve()
