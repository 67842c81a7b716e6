"""Core package containing the configuration and logging managers."""

from vellum.core.base import VellumManager
from vellum.core.config_manager import ConfigManager, ConfigSchema
from vellum.core.logging_manager import LoggingManager
