"""End-to-end orchestration of one standalone workflow run.

``run_workflow`` resolves configuration, provisions the disposable
resource set, launches the workbench pod, waits for it to finish, and
tears down what it created. Every outcome is reported through a
``RunResult``; expected failures never escape as exceptions.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from ilabe2e.config import ConfigError, MissingEnvironmentError, describe_config, resolve_run_config
from ilabe2e.journal import EventType, Journal
from ilabe2e.k8s import (
    TRANSPORT_ERRORS,
    K8sConnectionError,
    K8sError,
    PodFailedError,
    PodPhase,
    WaitCancelled,
    WaitTimeout,
    await_terminal_phase,
    get_k8s_client,
)
from ilabe2e.provision import (
    PreconditionError,
    ProvisionedResources,
    ResourceProvisioner,
    ResourceRef,
    WorkflowArgs,
)
from ilabe2e.provision.workload import describe_args
from ilabe2e.teardown import CleanupAction, CleanupFailure, CleanupStack

if TYPE_CHECKING:
    from ilabe2e.config import RunConfig
    from ilabe2e.k8s import K8sClient

logger = logging.getLogger(__name__)

DEFAULT_RUN_NAME = "ilab-standalone"


class RunStatus(str, Enum):
    """Final verdict of a run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMEOUT = "timeout"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


@dataclass
class RunResult:
    """Outcome of ``run_workflow``."""

    status: RunStatus
    message: str
    resources: ProvisionedResources = field(default_factory=ProvisionedResources)
    cleanup_errors: list[CleanupFailure] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    pod_phase: PodPhase | None = None
    workflow_args: WorkflowArgs | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    @property
    def skipped(self) -> bool:
        return self.status == RunStatus.SKIPPED


def run_workflow(
    environ: Mapping[str, str] | None = None,
    k8s: K8sClient | None = None,
    journal: Journal | None = None,
    cancel: threading.Event | None = None,
    config: RunConfig | None = None,
    run_name: str = DEFAULT_RUN_NAME,
) -> RunResult:
    """Run the standalone workflow end to end.

    Args:
        environ: Environment to resolve configuration from (default: ``os.environ``)
        k8s: Kubernetes client (default: built from in-cluster or kubeconfig)
        journal: Provenance journal. A session is opened and closed here
            unless one is already open. None disables journaling.
        cancel: Event that aborts the wait for the workbench pod
        config: Pre-resolved configuration; skips environment resolution
        run_name: Label for the journal session

    Returns:
        RunResult. Cleanup has always completed by the time this returns.
    """
    start = time.monotonic()
    cancel = cancel or threading.Event()

    owns_session = journal is not None and journal.session_id is None
    if journal is None:
        # Never opened, so every record is a no-op
        journal = Journal()
    elif owns_session:
        journal.open_session(run_name)

    journal.record(EventType.RUN_START, f"Run '{run_name}' started")
    result = _execute(environ, k8s, journal, cancel, config)
    elapsed = time.monotonic() - start
    result.elapsed_seconds = elapsed
    logger.info("Run %s after %.1fs: %s", result.status.value, elapsed, result.message)
    journal.record(
        EventType.RUN_END,
        result.message,
        success=result.succeeded,
        details={
            "status": result.status.value,
            "pod_phase": result.pod_phase.value if result.pod_phase else None,
            "cleanup_errors": [asdict(f) for f in result.cleanup_errors],
        },
        duration_s=elapsed,
    )
    if owns_session:
        journal.close_session()
    return result


def _execute(
    environ: Mapping[str, str] | None,
    k8s: K8sClient | None,
    journal: Journal,
    cancel: threading.Event,
    config: RunConfig | None,
) -> RunResult:
    if config is None:
        try:
            config = resolve_run_config(environ)
        except MissingEnvironmentError as e:
            logger.warning("Skipping run: %s", e)
            return RunResult(RunStatus.SKIPPED, str(e))
        except ConfigError as e:
            logger.error("Invalid configuration: %s", e)
            return RunResult(RunStatus.FAILED, f"Invalid configuration: {e}")

    journal.record(
        EventType.CONFIG_RESOLVED, "Configuration resolved", details=describe_config(config)
    )

    script_path = Path(config.script_path)
    try:
        script = script_path.read_text()
    except OSError as e:
        logger.error("Cannot read workflow script %s: %s", script_path, e)
        return RunResult(RunStatus.FAILED, f"Cannot read workflow script {script_path}: {e}")

    if cancel.is_set():
        return RunResult(RunStatus.CANCELLED, "Run cancelled before provisioning")

    if k8s is None:
        try:
            k8s = get_k8s_client()
        except K8sConnectionError as e:
            logger.error("%s", e)
            return RunResult(RunStatus.FAILED, str(e))

    def on_created(ref: ResourceRef) -> None:
        verb = "Created" if ref.owned else "Using existing"
        journal.record(EventType.RESOURCE_CREATED, f"{verb} {ref}", details=asdict(ref))

    def on_cleanup(action: CleanupAction, failure: CleanupFailure | None) -> None:
        if failure is None:
            journal.record(
                EventType.RESOURCE_DELETED,
                f"Deleted {action.description}",
                success=True,
                details={"resource": action.description},
            )
        else:
            journal.record(
                EventType.RESOURCE_CLEANUP_FAILED,
                f"Failed to delete {action.description}",
                success=False,
                details={"resource": action.description, "error": failure.error},
            )

    cleanup = CleanupStack(on_done=on_cleanup)
    provisioner = ResourceProvisioner(k8s, config, cleanup, on_created=on_created)
    result = RunResult(RunStatus.FAILED, "", resources=provisioner.resources)

    def on_phase(phase: PodPhase) -> None:
        result.pod_phase = phase
        journal.record(
            EventType.POD_PHASE, f"Pod phase {phase.value}", details={"phase": phase.value}
        )

    with cleanup:
        try:
            pod_name, args = provisioner.provision_all(script)
            result.workflow_args = args
            logger.info(
                "Waiting up to %ds for pod %s/%s (workflow args: %s)",
                int(config.timeout_seconds),
                provisioner.namespace,
                pod_name,
                describe_args(args),
            )
            await_terminal_phase(
                k8s,
                pod_name,
                provisioner.namespace,
                timeout_seconds=config.timeout_seconds,
                poll_interval=config.poll_interval_seconds,
                fail_fast=config.fail_fast,
                cancel=cancel,
                on_phase=on_phase,
            )
            result.status = RunStatus.SUCCEEDED
            result.message = f"Pod {pod_name} succeeded"
        except PreconditionError as e:
            logger.warning("Skipping run: %s", e)
            result.status = RunStatus.SKIPPED
            result.message = str(e)
        except PodFailedError as e:
            result.status = RunStatus.FAILED
            result.message = str(e)
        except WaitTimeout as e:
            result.status = RunStatus.TIMEOUT
            result.message = str(e)
        except WaitCancelled as e:
            result.status = RunStatus.CANCELLED
            result.message = str(e)
        except K8sError as e:
            logger.error("%s", e)
            result.status = RunStatus.FAILED
            result.message = str(e)
        except TRANSPORT_ERRORS as e:
            logger.error("Kubernetes API unreachable: %s", e)
            result.status = RunStatus.FAILED
            result.message = f"Kubernetes API unreachable: {e}"

    result.cleanup_errors = list(cleanup.failures)
    return result
