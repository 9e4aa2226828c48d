"""
railtube config package public API.

File: src/railtube/config/__init__.py

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``railtube.toml`` + ``RAILTUBE_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from railtube.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    env_name_for_path,
    load_config,
    normalize_paths,
)
from railtube.config.schema import (
    DEFAULT_CONFIG,
    LOG_LEVELS,
    PATH_FIELDS,
    ConfigValidationError,
    ConfigValidationIssue,
    RailtubeConfig,
    RuntimeSettings,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)

__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "RailtubeConfig",
    "RuntimeSettings",
    "assert_valid_config",
    "default_config",
    "env_name_for_path",
    "load_config",
    "merge_config",
    "normalize_paths",
    "validate_config",
]
