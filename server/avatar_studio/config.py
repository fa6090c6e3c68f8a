"""Configuration helpers for the avatar studio service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    """Centralized environment-driven configuration.

    Missing API credentials are tolerated here; the services report them as a
    "service not configured" error at call time instead of failing at startup.
    """

    anthropic_api_key: Optional[str] = os.getenv("ANTHROPIC_API_KEY")
    anthropic_base_url: str = os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com")
    anthropic_version: str = os.getenv("ANTHROPIC_VERSION", "2023-06-01")
    anthropic_model: str = os.getenv("ANTHROPIC_MODEL", "claude-3-7-sonnet-latest")
    replicate_api_token: Optional[str] = os.getenv("REPLICATE_API_TOKEN")
    replicate_model: str = os.getenv("REPLICATE_MODEL", "black-forest-labs/flux-schnell")
    # Seconds before the remote calls are abandoned.
    description_timeout: float = _env_float("DESCRIPTION_TIMEOUT_SECONDS", 30.0)
    image_timeout: float = _env_float("IMAGE_TIMEOUT_SECONDS", 60.0)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    return Settings()


settings = get_settings()
