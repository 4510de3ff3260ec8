"""TOML configuration loading.

Settings are layered from ``default.toml`` and ``{environment}.toml`` found
in the config directory; both files are optional.
"""

import os
import tomllib
from pathlib import Path
from typing import Any

from variantbench.exceptions import ConfigurationLoadError

CONFIG_DIR_ENV = "VARIANTBENCH_CONFIG_DIR"
ENVIRONMENT_ENV = "VARIANTBENCH_ENV"
DEFAULT_ENVIRONMENT = "development"

# Repository checkout: <root>/variantbench/config/loader.py -> <root>/config
_CHECKOUT_CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


def get_config_dir() -> Path:
    """Return the directory holding the TOML files.

    Resolution order: VARIANTBENCH_CONFIG_DIR (must exist), ./config, the
    config directory of the source checkout, then a relative "config" path.

    Raises:
        FileNotFoundError: If VARIANTBENCH_CONFIG_DIR names a missing directory
    """
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        path = Path(override)
        if not path.is_dir():
            raise FileNotFoundError(f"Config directory not found: {override}")
        return path

    for candidate in (Path.cwd() / "config", _CHECKOUT_CONFIG_DIR):
        if candidate.is_dir():
            return candidate
    return Path("config")


def get_environment() -> str:
    """Return the normalized VARIANTBENCH_ENV name, 'development' if unset."""
    value = os.environ.get(ENVIRONMENT_ENV, "").strip().lower()
    return value or DEFAULT_ENVIRONMENT


def load_toml(file_path: Path) -> dict[str, Any]:
    """Parse one TOML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigurationLoadError: If the TOML syntax is invalid
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    with file_path.open("rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationLoadError(f"Invalid TOML in {file_path}: {e}") from e


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return base updated with override; nested tables merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_config(
    config_dir: Path | None = None,
    environment: str | None = None,
) -> dict[str, Any]:
    """Load and merge ``default.toml`` and ``{environment}.toml``.

    Args:
        config_dir: Directory to read; defaults to get_config_dir()
        environment: Environment name; defaults to get_environment()
    """
    config_dir = config_dir or get_config_dir()
    environment = environment or get_environment()

    config: dict[str, Any] = {}
    for name in ("default", environment):
        path = config_dir / f"{name}.toml"
        if path.exists():
            config = deep_merge(config, load_toml(path))
    return config
