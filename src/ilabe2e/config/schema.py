"""Pydantic models for the ilab-e2e run configuration.

A ``RunConfig`` is an immutable snapshot of everything a run needs. It is
resolved once from the environment (see ``loader.resolve_run_config``) and
passed explicitly through the orchestrator; nothing downstream re-reads
``os.environ`` mid-run.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ilabe2e._constants import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SCRIPT_PATH,
    DEFAULT_SDG_SAMPLING_SIZE,
    DEFAULT_STORAGE_CLASS,
    DEFAULT_TAXONOMY_REPO_PR,
    DEFAULT_TEST_RUN_TIMEOUT,
    DEFAULT_WORKBENCH_IMAGE,
)

# =============================================================================
# Credential blocks
# =============================================================================


class ObjectStoreConfig(BaseModel):
    """S3-compatible object store holding the SDG input data."""

    model_config = ConfigDict(frozen=True)

    bucket: str
    data_key: str
    endpoint: str = ""
    access_key: str = ""
    secret_key: str = ""
    region: str = ""
    # Passed through verbatim; the workflow script interprets it
    verify_tls: str = ""


class ServingModelConfig(BaseModel):
    """Credentials for an external model endpoint (judge or SDG serving model)."""

    model_config = ConfigDict(frozen=True)

    api_key: str
    name: str
    endpoint: str
    ca_cert_from_openshift: bool = False


# =============================================================================
# Root Configuration
# =============================================================================


class RunConfig(BaseModel):
    """Root configuration for one end-to-end run."""

    model_config = ConfigDict(frozen=True)

    workbench_image: str = DEFAULT_WORKBENCH_IMAGE
    storage_class: str = DEFAULT_STORAGE_CLASS
    timeout_seconds: float = Field(default=DEFAULT_TEST_RUN_TIMEOUT, gt=0)
    poll_interval_seconds: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)

    object_store: ObjectStoreConfig
    judge: ServingModelConfig
    sdg: ServingModelConfig

    namespace: str | None = None
    service_account: str | None = None

    num_gpus: int = Field(default=1, ge=1)
    sdg_sampling_size: str = DEFAULT_SDG_SAMPLING_SIZE
    taxonomy_repo_pr: int = DEFAULT_TAXONOMY_REPO_PR
    script_path: str = DEFAULT_SCRIPT_PATH
    fail_fast: bool = True

    @field_validator("sdg_sampling_size")
    @classmethod
    def _check_sampling_size(cls, v: str) -> str:
        try:
            value = float(v)
        except ValueError:
            raise ValueError(f"sampling size must be a number, got {v!r}")  # noqa: B904
        if value <= 0:
            raise ValueError(f"sampling size must be positive, got {v!r}")
        return v

    @field_validator("namespace", "service_account")
    @classmethod
    def _empty_as_none(cls, v: str | None) -> str | None:
        return v or None
