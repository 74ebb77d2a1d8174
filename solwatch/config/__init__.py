"""
Configuration management for solwatch.

Loads and validates settings from environment variables and an optional
.env file. Exposes a single source of truth for all service configuration.
"""

from solwatch.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
