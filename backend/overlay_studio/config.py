"""Application configuration from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    gemini_api_key: str = ""
    overlay_env: str = "development"
    overlay_log_level: str = "info"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Upstream models
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-3-flash-preview"
    image_model: str = "gemini-3-pro-image-preview"
    upstream_timeout_seconds: float = 60.0

    # Pipeline
    default_image_side: int = 512
    low_confidence_threshold: float = 0.4

    # Editing sessions (process memory only)
    max_sessions: int = 64
    max_image_side: int = 8192

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
