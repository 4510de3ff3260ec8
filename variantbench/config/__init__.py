"""Configuration for VariantBench.

Settings come from model defaults, TOML files and VARIANTBENCH_* variables:

    from variantbench.config import get_settings

    timeout = get_settings().execution.generation_timeout_seconds
"""

from functools import lru_cache
from pathlib import Path

from variantbench.config.loader import load_config
from variantbench.config.models.execution import ExecutionConfig
from variantbench.config.settings import Settings, set_toml_config


def build_settings(
    config_dir: Path | None = None,
    environment: str | None = None,
) -> Settings:
    """Load TOML for ``environment`` and build an uncached Settings.

    VARIANTBENCH_* environment variables still take priority over the files.
    """
    set_toml_config(load_config(config_dir, environment))
    return Settings()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide Settings, built on first use."""
    return build_settings()


def reload_settings() -> Settings:
    """Drop the cached Settings and build them again."""
    get_settings.cache_clear()
    return get_settings()


__all__ = [
    "ExecutionConfig",
    "Settings",
    "build_settings",
    "get_settings",
    "reload_settings",
]
