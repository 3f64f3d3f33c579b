"""Configuration management for Month-End Tracker."""

from monthend_tracker.config.schema import AppConfig
from monthend_tracker.config.manager import ConfigManager

__all__ = ["AppConfig", "ConfigManager"]
