"""Core: config, exception handlers, lifespan, and rate limiting.

Single place for settings and application bootstrap.
"""

from royalty_pipeline.core.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
