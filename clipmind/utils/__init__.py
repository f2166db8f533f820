"""
Utilities Module
================

Shared infrastructure:
- logger: component-scoped colored logging
- config: typed configuration loaded from the environment
"""

from clipmind.utils.logger import Logger, logger
from clipmind.utils.config import get_config, Config

__all__ = ["Logger", "logger", "get_config", "Config"]
