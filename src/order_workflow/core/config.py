"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from .enums import BusBackend

# Digits with optional single space/dash separators; length and checksum are
# checked separately by the factory.
DEFAULT_CARD_PATTERN = r"^\d+(?:[ -]?\d+)*$"
MAX_ORDER_TOTAL = Decimal("99999.99")


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"
    metrics_port: int = 9090


class BusConfig(BaseModel):
    backend: BusBackend = BusBackend.MEMORY
    redis_url: str = "redis://localhost:6379/0"
    max_stream_length: int = 10_000
    max_handler_retries: int = 3


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level application settings.

    Loaded from TOML config files, overridden by environment variables.
    """

    max_order_total: Decimal = MAX_ORDER_TOTAL
    card_pattern: str = DEFAULT_CARD_PATTERN
    card_min_digits: int = 13
    card_max_digits: int = 19

    # Reject writes whose base snapshot is no longer the stored version.
    # Off by default: updates are last-writer-wins.
    strict_versioning: bool = False

    bus: BusConfig = Field(default_factory=BusConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "ORDERS_", "env_nested_delimiter": "__"}


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional).
        overrides: Dict of overrides to apply on top.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            with open(path, "rb") as f:
                data = tomli.load(f)

    if overrides:
        data.update(overrides)

    return Settings(**data)
