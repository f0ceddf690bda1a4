"""Configuration for the research verification subsystem."""

from research_system.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
