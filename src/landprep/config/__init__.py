# src/landprep/config/__init__.py
"""
Configuration system using Pydantic models loaded from YAML
"""

from landprep.config.exceptions import (
    ConfigurationError,
    ConfigurationNotFoundError,
    ConfigurationValidationError,
)
from landprep.config.loader import config_sources, load_config
from landprep.config.models import (
    AppConfig,
    BoundaryConfig,
    ConsoleLoggingConfig,
    DatasetConfig,
    ElevationConfig,
    FetchConfig,
    GlobalConfig,
    LoggingConfig,
    PathsConfig,
    RasterConfig,
    ThemeConfig,
)

REGIONAL_PREFIX = "R"
LOCAL_PREFIX = "L"

__all__ = [
    "AppConfig",
    "BoundaryConfig",
    "ConsoleLoggingConfig",
    "DatasetConfig",
    "ElevationConfig",
    "FetchConfig",
    "GlobalConfig",
    "LoggingConfig",
    "PathsConfig",
    "RasterConfig",
    "ThemeConfig",
    "ConfigurationError",
    "ConfigurationNotFoundError",
    "ConfigurationValidationError",
    "load_config",
    "config_sources",
    "REGIONAL_PREFIX",
    "LOCAL_PREFIX",
]
