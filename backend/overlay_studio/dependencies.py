"""FastAPI dependency injection."""

from __future__ import annotations

from fastapi import Depends, Request

from overlay_studio.config import Settings, settings
from overlay_studio.engine.pipeline import OverlayOrchestrator, create_orchestrator
from overlay_studio.engine.session import SessionStore
from overlay_studio.llm.client import GeminiTransport, Transport


def get_settings() -> Settings:
    return settings


def get_transport(settings: Settings = Depends(get_settings)) -> Transport:
    return GeminiTransport(settings)


def get_orchestrator(
    settings: Settings = Depends(get_settings),
    transport: Transport = Depends(get_transport),
) -> OverlayOrchestrator:
    return create_orchestrator(transport, settings)


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.sessions
