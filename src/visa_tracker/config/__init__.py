"""Configuration module for the visa tracker."""

from visa_tracker.config.logging import bind_command_context, configure_logging
from visa_tracker.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging", "bind_command_context"]
