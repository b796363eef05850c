"""
Runtime settings for the Simulix backend.

Settings come from environment variables so the same build runs in the
Vite dev setup and behind a reverse proxy:

- SIMULIX_HOST / SIMULIX_PORT: bind address for ``python main.py``
- SIMULIX_LOG_LEVEL: root log level (default INFO)
- SIMULIX_MAX_WORKERS: size of the background job thread pool
- SIMULIX_BACKGROUND_TRADEOFF: offload the bias-variance tradeoff sweep to
  the job pool ("true") or compute it inline ("false")
- SIMULIX_CORS_ORIGINS: comma separated list of allowed origins ("*" allowed)
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        # Bad values fall back to the default rather than refusing to start
        return default


@dataclass(frozen=True)
class Settings:
    """Backend settings resolved from the environment."""

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    max_workers: int = 4
    background_tradeoff: bool = True
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.environ.get("SIMULIX_CORS_ORIGINS", "*")
        return cls(
            host=os.environ.get("SIMULIX_HOST", "127.0.0.1"),
            port=_env_int("SIMULIX_PORT", 8000),
            log_level=os.environ.get("SIMULIX_LOG_LEVEL", "INFO"),
            max_workers=max(1, _env_int("SIMULIX_MAX_WORKERS", 4)),
            background_tradeoff=_env_bool("SIMULIX_BACKGROUND_TRADEOFF", True),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] or ["*"],
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings (read once)."""
    return Settings.from_env()
