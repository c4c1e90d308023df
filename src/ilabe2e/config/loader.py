"""Environment-driven configuration resolver for ilab-e2e."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from .schema import RunConfig

# Object store
ENV_BUCKET = "AWS_STORAGE_BUCKET"
ENV_ACCESS_KEY = "AWS_ACCESS_KEY_ID"
ENV_SECRET_KEY = "AWS_SECRET_ACCESS_KEY"
ENV_REGION = "AWS_DEFAULT_REGION"
ENV_ENDPOINT = "AWS_DEFAULT_ENDPOINT"
ENV_DATA_KEY = "SDG_OBJECT_STORE_DATA_KEY"
ENV_VERIFY_TLS = "SDG_OBJECT_STORE_VERIFY_TLS"

# Judge model
ENV_JUDGE_API_KEY = "JUDGE_API_KEY"
ENV_JUDGE_NAME = "JUDGE_NAME"
ENV_JUDGE_ENDPOINT = "JUDGE_ENDPOINT"
ENV_JUDGE_CA_FROM_OPENSHIFT = "JUDGE_CA_CERT_FROM_OPENSHIFT"

# SDG serving model
ENV_SDG_API_KEY = "SDG_SERVING_MODEL_API_KEY"
ENV_SDG_NAME = "SDG_NAME"
ENV_SDG_ENDPOINT = "SDG_ENDPOINT"
ENV_SDG_CA_FROM_OPENSHIFT = "SDG_CA_CERT_FROM_OPENSHIFT"

# Run
ENV_WORKBENCH_IMAGE = "RHELAI_WORKBENCH_IMAGE"
ENV_TIMEOUT = "TEST_RUN_TIMEOUT"
ENV_STORAGE_CLASS = "TEST_ILAB_STORAGE_CLASS_NAME"
ENV_NAMESPACE = "TEST_NAMESPACE"
ENV_SERVICE_ACCOUNT = "TEST_SERVICE_ACCOUNT"
ENV_SAMPLING_SIZE = "SDG_SAMPLING_SIZE"
ENV_NUM_GPUS = "TEST_ILAB_NUM_GPUS"
ENV_SCRIPT_PATH = "ILAB_STANDALONE_SCRIPT"
ENV_FAIL_FAST = "TEST_FAIL_FAST_ON_POD_FAILURE"

REQUIRED_ENV_VARS = (
    ENV_BUCKET,
    ENV_DATA_KEY,
    ENV_JUDGE_API_KEY,
    ENV_JUDGE_NAME,
    ENV_JUDGE_ENDPOINT,
    ENV_SDG_API_KEY,
    ENV_SDG_NAME,
    ENV_SDG_ENDPOINT,
)

_SECRET_FIELDS = {"access_key", "secret_key", "api_key"}


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigParseError(ConfigError):
    """Raised when an environment value cannot be parsed."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration validation fails."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class MissingEnvironmentError(ConfigError):
    """Raised when required environment variables are absent.

    This is a precondition failure: the run cannot happen in this
    environment and should be reported as skipped, not failed.
    """

    def __init__(self, missing: list[str]):
        super().__init__(f"Required environment variables not set: {', '.join(missing)}")
        self.missing = missing


def lookup_env(name: str, environ: Mapping[str, str] | None = None) -> tuple[str, bool]:
    """Look up an environment variable.

    Returns:
        Tuple of (value, present). ``value`` is "" when absent.
    """
    env = os.environ if environ is None else environ
    if name in env:
        return env[name], True
    return "", False


_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(text: str) -> float:
    """Parse a Go-style duration string (``10h``, ``1h30m``, ``2.5s``) to seconds.

    Raises:
        ConfigParseError: If the string is not a valid duration
    """
    s = text.strip()
    if not s:
        raise ConfigParseError("Empty duration")

    sign = 1.0
    if s[0] in "+-":
        sign = -1.0 if s[0] == "-" else 1.0
        s = s[1:]

    if s == "0":
        return 0.0

    total = 0.0
    pos = 0
    while pos < len(s):
        match = _DURATION_PART_RE.match(s, pos)
        if not match:
            raise ConfigParseError(f"Invalid duration: {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos == 0:
        raise ConfigParseError(f"Invalid duration: {text!r}")
    return sign * total


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def resolve_run_config(environ: Mapping[str, str] | None = None) -> RunConfig:
    """Resolve the run configuration from environment variables.

    Args:
        environ: Mapping to read from (default: ``os.environ``)

    Returns:
        Validated, immutable RunConfig

    Raises:
        MissingEnvironmentError: If any required variable is absent
        ConfigParseError: If a duration cannot be parsed
        ConfigValidationError: If a value fails validation
    """

    def get(name: str) -> tuple[str, bool]:
        return lookup_env(name, environ)

    missing = [name for name in REQUIRED_ENV_VARS if not get(name)[1]]
    if missing:
        raise MissingEnvironmentError(missing)

    data: dict[str, Any] = {
        "object_store": {
            "bucket": get(ENV_BUCKET)[0],
            "data_key": get(ENV_DATA_KEY)[0],
            "endpoint": get(ENV_ENDPOINT)[0],
            "access_key": get(ENV_ACCESS_KEY)[0],
            "secret_key": get(ENV_SECRET_KEY)[0],
            "region": get(ENV_REGION)[0],
            "verify_tls": get(ENV_VERIFY_TLS)[0],
        },
        "judge": {
            "api_key": get(ENV_JUDGE_API_KEY)[0],
            "name": get(ENV_JUDGE_NAME)[0],
            "endpoint": get(ENV_JUDGE_ENDPOINT)[0],
            # Only the literal "true" enables the OpenShift CA reference
            "ca_cert_from_openshift": get(ENV_JUDGE_CA_FROM_OPENSHIFT)[0] == "true",
        },
        "sdg": {
            "api_key": get(ENV_SDG_API_KEY)[0],
            "name": get(ENV_SDG_NAME)[0],
            "endpoint": get(ENV_SDG_ENDPOINT)[0],
            "ca_cert_from_openshift": get(ENV_SDG_CA_FROM_OPENSHIFT)[0] == "true",
        },
    }

    optional = {
        "workbench_image": ENV_WORKBENCH_IMAGE,
        "storage_class": ENV_STORAGE_CLASS,
        "namespace": ENV_NAMESPACE,
        "service_account": ENV_SERVICE_ACCOUNT,
        "sdg_sampling_size": ENV_SAMPLING_SIZE,
        "num_gpus": ENV_NUM_GPUS,
        "script_path": ENV_SCRIPT_PATH,
    }
    for field_name, env_name in optional.items():
        value, present = get(env_name)
        if present:
            data[field_name] = value

    timeout, present = get(ENV_TIMEOUT)
    if present:
        data["timeout_seconds"] = parse_duration(timeout)

    fail_fast, present = get(ENV_FAIL_FAST)
    if present:
        data["fail_fast"] = _env_flag(fail_fast)

    try:
        return RunConfig.model_validate(data)
    except ValidationError as e:
        errors = e.errors()
        error_messages = []
        for err in errors:
            loc = ".".join(str(x) for x in err["loc"])
            error_messages.append(f"  - {loc}: {err['msg']}")

        raise ConfigValidationError(  # noqa: B904
            "Configuration validation failed:\n" + "\n".join(error_messages),
            errors=[dict(err) for err in errors],  # type: ignore[call-overload]
        )


def _mask(value: str) -> str:
    if not value:
        return ""
    return "****" if len(value) <= 4 else value[:2] + "****"


def describe_config(cfg: RunConfig) -> dict[str, Any]:
    """Return a display-safe view of the configuration with secrets masked."""
    data = cfg.model_dump(mode="json")
    for block in ("object_store", "judge", "sdg"):
        for key in _SECRET_FIELDS & set(data[block]):
            data[block][key] = _mask(data[block][key])
    return data
