"""Configuration module for lorekeeper."""

from lorekeeper.config.loader import get_config_path, load_config, save_config
from lorekeeper.config.schema import BoostRule, Config, DecayConfig

__all__ = ["Config", "DecayConfig", "BoostRule", "load_config", "save_config", "get_config_path"]
