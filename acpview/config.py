# acpview/config.py
"""
ACPVIEW Configuration: single source of truth via Pydantic Settings.

Resolution order: CLI flags > env vars (ACPVIEW_*) > .env file > defaults.

The engine components (executor, resolver) receive a config instance in
their constructor; only the CLI goes through :func:`get_config`.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_RESOLUTION_DEPTH = 1
MAX_RESOLUTION_DEPTH = 5


def clamp_resolution_depth(depth: int) -> int:
    """Clamp a reference resolution depth to the supported range."""
    return min(max(int(depth), MIN_RESOLUTION_DEPTH), MAX_RESOLUTION_DEPTH)


class AcpViewConfig(BaseSettings):
    """Central configuration for ACPVIEW."""

    model_config = SettingsConfigDict(
        env_prefix="ACPVIEW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- FHIR server ---
    server_url: str = "https://server.fire.ly"
    request_timeout: float = 30.0
    # Conformance-mode headers sent with every request.
    extra_headers: dict[str, str] = Field(default_factory=dict)

    # --- Reference resolution ---
    reference_resolution_depth: int = 2

    # --- CRMI artifact authoring ---
    canonical_base_url: str = "https://example.org/fhir"

    # --- Paths ---
    home_dir: Path = Field(default_factory=lambda: Path.home() / ".acpview")

    @field_validator("reference_resolution_depth")
    @classmethod
    def _clamp_depth(cls, value: int) -> int:
        return clamp_resolution_depth(value)

    @field_validator("server_url", "canonical_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @property
    def cache_dir(self) -> Path:
        return self.home_dir / "cache"

    @property
    def log_dir(self) -> Path:
        return self.home_dir / "logs"


@lru_cache(maxsize=1)
def get_config() -> AcpViewConfig:
    """Return the global config singleton."""
    return AcpViewConfig()
