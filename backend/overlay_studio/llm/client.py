"""Gemini generateContent transport (REST over httpx)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from overlay_studio.config import Settings
from overlay_studio.engine.errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class UpstreamRequest:
    """One generateContent call: model + content parts + generation config."""

    model: str
    parts: list[dict[str, Any]] = field(default_factory=list)
    temperature: float = 0.2
    response_modalities: list[str] | None = None
    response_mime_type: str | None = None

    def to_body(self) -> dict[str, Any]:
        generation_config: dict[str, Any] = {"temperature": self.temperature}
        if self.response_modalities:
            generation_config["responseModalities"] = self.response_modalities
        if self.response_mime_type:
            generation_config["responseMimeType"] = self.response_mime_type
        return {
            "contents": [{"parts": self.parts}],
            "generationConfig": generation_config,
        }


class Transport(Protocol):
    async def send(self, request: UpstreamRequest) -> dict[str, Any]: ...


class GeminiTransport:
    """Posts UpstreamRequests to the Gemini REST API.

    Non-2xx answers and payloads carrying an ``error`` object raise
    UpstreamError so the orchestrator can classify them.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.settings.gemini_api_key)

    async def send(self, request: UpstreamRequest) -> dict[str, Any]:
        url = f"{self.settings.gemini_api_base}/models/{request.model}:generateContent"
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.settings.gemini_api_key,
        }
        logger.debug("POST %s", url)

        if self._client is not None:
            response = await self._client.post(url, json=request.to_body(), headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.settings.upstream_timeout_seconds) as client:
                response = await client.post(url, json=request.to_body(), headers=headers)

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            raise UpstreamError(response.status_code, _error_message(data, response.text))
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            err = data["error"]
            raise UpstreamError(err.get("code"), _error_message(data, response.text))
        if not isinstance(data, dict):
            raise UpstreamError(response.status_code, "Unexpected response payload")
        return data


def _error_message(data: Any, fallback: str) -> str:
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        err = data["error"]
        message = err.get("message") or ""
        status = err.get("status") or ""
        return f"{status}: {message}" if status else message or fallback
    return fallback or "empty response"
