"""ilab-e2e configuration module."""

from .loader import (
    REQUIRED_ENV_VARS,
    ConfigError,
    ConfigParseError,
    ConfigValidationError,
    MissingEnvironmentError,
    describe_config,
    lookup_env,
    parse_duration,
    resolve_run_config,
)
from .schema import ObjectStoreConfig, RunConfig, ServingModelConfig

__all__ = [
    # Config classes
    "RunConfig",
    "ObjectStoreConfig",
    "ServingModelConfig",
    # Resolver functions
    "lookup_env",
    "parse_duration",
    "resolve_run_config",
    "describe_config",
    "REQUIRED_ENV_VARS",
    # Exceptions
    "ConfigError",
    "ConfigParseError",
    "ConfigValidationError",
    "MissingEnvironmentError",
]
