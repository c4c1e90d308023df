"""Kubernetes client module for ilab-e2e."""

from .client import (
    TRANSPORT_ERRORS,
    K8sClient,
    K8sConnectionError,
    K8sError,
    K8sResourceError,
    PodPhase,
    get_k8s_client,
)
from .wait import (
    PodFailedError,
    WaitCancelled,
    WaitError,
    WaitResult,
    WaitStatus,
    WaitTimeout,
    await_terminal_phase,
    is_transient,
    wait_for_pod_phase,
)

__all__ = [
    # Client
    "K8sClient",
    "PodPhase",
    "get_k8s_client",
    "TRANSPORT_ERRORS",
    # Errors
    "K8sError",
    "K8sConnectionError",
    "K8sResourceError",
    "WaitError",
    "WaitTimeout",
    "WaitCancelled",
    "PodFailedError",
    # Wait
    "WaitResult",
    "WaitStatus",
    "wait_for_pod_phase",
    "await_terminal_phase",
    "is_transient",
]
