"""
Configuration management for DrainGuard.

Loads policy thresholds and collaborator endpoints from environment
variables and an optional .env file.
"""

from drainguard.config.settings import DetectionConfig, get_settings  # noqa: F401

__all__ = ["DetectionConfig", "get_settings"]
