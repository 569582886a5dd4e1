"""Configuration loading and validation."""

from .manager import Config, DEFAULT_CONFIG, validate_config_dict

__all__ = ['Config', 'DEFAULT_CONFIG', 'validate_config_dict']
