"""
ci-driver config package public API.

Purpose
- Export the environment resolver (stage flags -> ``ConfigSnapshot``) and the
  runtime settings loader with its error types.
"""

from ci_driver.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    env_name_for_path,
    flag_enabled,
    load_settings,
    normalize_paths,
    resolve_snapshot,
)
from ci_driver.config.schema import (
    DEFAULT_SETTINGS,
    LOG_FORMATS,
    LOG_LEVELS,
    PATH_FIELDS,
    ConfigSnapshot,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    DriverSettings,
    assert_valid_settings,
    default_settings,
    merge_config,
    validate_settings,
)

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_SETTINGS",
    "ENV_PREFIX",
    "LOG_FORMATS",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ConfigLoadError",
    "ConfigSnapshot",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DriverSettings",
    "assert_valid_settings",
    "default_settings",
    "env_name_for_path",
    "flag_enabled",
    "load_settings",
    "merge_config",
    "normalize_paths",
    "resolve_snapshot",
    "validate_settings",
]
