"""
ask validation module.

This module provides configuration loading and validation.
"""

from ask.validation.config import AskConfig, Config, ConfigError, expand_env_vars

__all__ = ["AskConfig", "Config", "ConfigError", "expand_env_vars"]
