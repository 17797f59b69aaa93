"""Unified configuration system for runwatch."""

from runwatch.config.loader import ConfigLoadError, YAMLConfigLoader
from runwatch.config.manager import ConfigManager
from runwatch.config.models import (
    ApiConfig,
    CatalogEntryConfig,
    DatabaseConfig,
    RunwatchConfig,
    StorageConfig,
    TaxonomyConfig,
    UploadsConfig,
)

__all__ = [
    "ApiConfig",
    "CatalogEntryConfig",
    "ConfigLoadError",
    "ConfigManager",
    "DatabaseConfig",
    "RunwatchConfig",
    "StorageConfig",
    "TaxonomyConfig",
    "UploadsConfig",
    "YAMLConfigLoader",
]
