"""FastAPI app factory."""

from __future__ import annotations

import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from overlay_studio.config import settings
from overlay_studio.engine.session import SessionStore
from overlay_studio.models.responses import ErrorResponse

load_dotenv()

logging.basicConfig(
    level=getattr(logging, settings.overlay_log_level.upper(), logging.INFO),
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies answer with the same {error, logs} shape as the pipeline."""
    details = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        details.append(f"{field}: {err.get('msg', 'invalid')}")
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error=f"Invalid request: {'; '.join(details)}").model_dump(),
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Overlay Studio",
        description="Instruction-driven transparent overlay generation for a base image",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, _validation_error)

    # Editing sessions belong to this app instance only
    app.state.sessions = SessionStore(max_sessions=settings.max_sessions)

    from overlay_studio.api.router import api_router

    app.include_router(api_router)

    return app


app = create_app()
