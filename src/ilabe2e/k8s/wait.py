"""Completion watcher for the workload pod.

The watcher is a small state machine driven by each poll's observed pod
phase::

    WAITING --Succeeded--> SUCCEEDED
    WAITING --Failed-----> FAILED      (only when fail_fast is set)
    WAITING --deadline---> TIMEOUT
    WAITING --cancel-----> CANCELLED

Transient API errors (throttling, 5xx, dropped connections) are retried up
to ``max_transient_errors`` consecutive times; anything else is fatal.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import urllib3.exceptions

from .client import K8sConnectionError, K8sError, K8sResourceError, PodPhase

if TYPE_CHECKING:
    from .client import K8sClient

logger = logging.getLogger(__name__)


class WaitStatus(Enum):
    """Status of a wait operation."""

    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass
class WaitResult:
    """Result of a wait operation."""

    status: WaitStatus
    message: str
    elapsed_seconds: float
    attempts: int
    phase: PodPhase | None = None


class WaitError(K8sError):
    """Raised when a wait operation fails."""

    pass


class WaitTimeout(WaitError):
    """Raised when a wait operation times out."""

    pass


class WaitCancelled(WaitError):
    """Raised when a wait operation is cancelled externally."""

    pass


class PodFailedError(WaitError):
    """Raised when the watched pod reaches the Failed phase."""

    pass


def is_transient(exc: BaseException) -> bool:
    """Return True if a polling error is worth retrying."""
    if isinstance(exc, K8sResourceError):
        return exc.status is None or exc.status == 429 or exc.status >= 500
    return isinstance(
        exc,
        (K8sConnectionError, urllib3.exceptions.HTTPError, ConnectionError, TimeoutError),
    )


def _next_state(phase: PodPhase, fail_fast: bool) -> WaitStatus:
    if phase == PodPhase.SUCCEEDED:
        return WaitStatus.SUCCEEDED
    if phase == PodPhase.FAILED and fail_fast:
        return WaitStatus.FAILED
    return WaitStatus.WAITING


def wait_for_pod_phase(
    client: K8sClient,
    name: str,
    namespace: str,
    timeout_seconds: float = 300,
    poll_interval: float = 2,
    fail_fast: bool = True,
    max_transient_errors: int = 3,
    cancel: threading.Event | None = None,
    on_phase: Callable[[PodPhase], None] | None = None,
) -> WaitResult:
    """Poll a pod until it succeeds, fails, times out, or is cancelled.

    Args:
        client: K8sClient instance
        name: Pod name
        namespace: Namespace
        timeout_seconds: Maximum time to wait
        poll_interval: Seconds between polls
        fail_fast: Stop as soon as the pod is observed in the Failed phase.
            When False, a Failed pod keeps being polled until the timeout.
        max_transient_errors: Consecutive transient errors tolerated
        cancel: Event that aborts the wait when set
        on_phase: Called whenever the observed phase changes

    Returns:
        WaitResult with outcome

    Raises:
        WaitError: On a non-transient API error, or too many transient ones
    """
    cancel = cancel or threading.Event()
    start_time = time.monotonic()
    attempts = 0
    consecutive_errors = 0
    last_phase: PodPhase | None = None
    message = ""

    def result(status: WaitStatus, msg: str) -> WaitResult:
        return WaitResult(
            status=status,
            message=msg,
            elapsed_seconds=time.monotonic() - start_time,
            attempts=attempts,
            phase=last_phase,
        )

    while True:
        if cancel.is_set():
            return result(WaitStatus.CANCELLED, f"Wait for pod {name} cancelled")

        attempts += 1
        try:
            phase = client.get_pod_phase(name, namespace)
        except Exception as e:
            if not is_transient(e):
                raise WaitError(f"Error polling pod {namespace}/{name}: {e}") from e
            consecutive_errors += 1
            if consecutive_errors > max_transient_errors:
                raise WaitError(
                    f"Giving up on pod {namespace}/{name} after "
                    f"{consecutive_errors} consecutive errors: {e}"
                ) from e
            logger.warning(
                "Transient error polling pod %s (%d/%d): %s",
                name,
                consecutive_errors,
                max_transient_errors,
                e,
            )
            message = str(e)
        else:
            consecutive_errors = 0
            if phase != last_phase:
                logger.info("Pod %s/%s phase: %s", namespace, name, phase.value)
                last_phase = phase
                if on_phase is not None:
                    on_phase(phase)

            state = _next_state(phase, fail_fast)
            if state == WaitStatus.SUCCEEDED:
                return result(state, f"Pod {name} succeeded")
            if state == WaitStatus.FAILED:
                return result(state, f"Pod {name} failed")
            message = f"Pod {name} is {phase.value}"

        elapsed = time.monotonic() - start_time
        if elapsed >= timeout_seconds:
            return result(
                WaitStatus.TIMEOUT,
                f"Timeout after {int(elapsed)}s waiting for pod {name}: {message}",
            )

        # Event.wait returns True when cancelled during the sleep
        if cancel.wait(min(poll_interval, timeout_seconds - elapsed)):
            return result(WaitStatus.CANCELLED, f"Wait for pod {name} cancelled")


def await_terminal_phase(
    client: K8sClient,
    name: str,
    namespace: str,
    timeout_seconds: float,
    poll_interval: float = 2,
    fail_fast: bool = True,
    max_transient_errors: int = 3,
    cancel: threading.Event | None = None,
    on_phase: Callable[[PodPhase], None] | None = None,
) -> PodPhase:
    """Block until the pod succeeds; raise on any other outcome.

    Returns:
        PodPhase.SUCCEEDED

    Raises:
        WaitTimeout: Pod did not succeed within ``timeout_seconds``
        PodFailedError: Pod reached Failed and ``fail_fast`` is set
        WaitCancelled: ``cancel`` was set
        WaitError: Polling failed with a non-retryable error
    """
    outcome = wait_for_pod_phase(
        client,
        name,
        namespace,
        timeout_seconds=timeout_seconds,
        poll_interval=poll_interval,
        fail_fast=fail_fast,
        max_transient_errors=max_transient_errors,
        cancel=cancel,
        on_phase=on_phase,
    )
    if outcome.status == WaitStatus.SUCCEEDED:
        return PodPhase.SUCCEEDED
    if outcome.status == WaitStatus.FAILED:
        raise PodFailedError(outcome.message)
    if outcome.status == WaitStatus.CANCELLED:
        raise WaitCancelled(outcome.message)
    raise WaitTimeout(outcome.message)
