"""Configuration loading utilities."""

import json
import os
from pathlib import Path

from loguru import logger

from lorekeeper.config.schema import Config


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".lorekeeper" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    A missing or unreadable file yields the default configuration.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            data = _migrate_config(data)
            return Config.model_validate(data)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}. Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file with owner-only permissions.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(by_alias=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)

    os.chmod(path, 0o600)
    logger.debug(f"Config saved: {path}")


def _migrate_config(data: dict) -> dict:
    """Migrate old config formats to current."""
    # Legacy files kept caps under vector.memoryCaps and decay under vector.temporalDecay
    vector = data.pop("vector", None)
    if isinstance(vector, dict):
        memory = data.setdefault("memory", {})
        if "memoryCaps" in vector and "caps" not in memory:
            memory["caps"] = vector["memoryCaps"]
        if "temporalDecay" in vector and "temporalDecay" not in memory:
            memory["temporalDecay"] = vector["temporalDecay"]
        if "conditionalRules" in vector and "conditionalRules" not in memory:
            memory["conditionalRules"] = vector["conditionalRules"]
    return data
