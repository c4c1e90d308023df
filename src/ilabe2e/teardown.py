"""Best-effort teardown of resources created during a run.

Each provisioning step registers its own deletion the moment the resource
exists, so a failure halfway through setup still cleans up everything
created so far. Actions run in reverse registration order; a failing
action is logged and recorded but never raised, so cleanup cannot mask
the run's own verdict.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CleanupAction:
    """A single registered teardown step."""

    description: str
    fn: Callable[[], Any]


@dataclass
class CleanupFailure:
    """A teardown step that raised."""

    description: str
    error: str


class CleanupStack:
    """Ordered teardown actions, executed last-in first-out.

    Usage::

        with CleanupStack() as cleanup:
            ns = k8s.create_namespace(generate_name="test-ns-")
            cleanup.push(f"namespace {ns.metadata.name}", lambda: k8s.delete_namespace(...))
            ...
        # every pushed action has run here, even if the block raised
    """

    def __init__(
        self,
        on_done: Callable[[CleanupAction, CleanupFailure | None], None] | None = None,
    ):
        self._actions: list[CleanupAction] = []
        self.failures: list[CleanupFailure] = []
        self._on_done = on_done

    def __len__(self) -> int:
        return len(self._actions)

    def __enter__(self) -> CleanupStack:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.run_all()
        return False

    def push(self, description: str, fn: Callable[[], Any]) -> None:
        """Register a teardown action."""
        self._actions.append(CleanupAction(description, fn))

    def run_all(self) -> list[CleanupFailure]:
        """Run and drain all registered actions in reverse order.

        Returns:
            Failures from this pass (also accumulated on ``self.failures``)
        """
        failures: list[CleanupFailure] = []
        while self._actions:
            action = self._actions.pop()
            failure = None
            try:
                action.fn()
                logger.info("Cleaned up %s", action.description)
            except Exception as e:
                failure = CleanupFailure(action.description, str(e))
                failures.append(failure)
                logger.warning("Cleanup of %s failed: %s", action.description, e)

            if self._on_done is not None:
                try:
                    self._on_done(action, failure)
                except Exception:
                    logger.debug("Cleanup callback failed", exc_info=True)

        self.failures.extend(failures)
        return failures
