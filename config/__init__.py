"""Configuration for the franchise proof system."""

from .config import ZKConfig, SystemConfig, load_config, save_config

__all__ = ['ZKConfig', 'SystemConfig', 'load_config', 'save_config']
