"""Cluster-scoped RBAC for the workbench service account.

The workflow script running in the workbench pod launches SDG jobs,
PyTorchJobs and PVCs in the test namespace, so its service account is
bound to a fixed ClusterRole for the duration of the run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ilabe2e._constants import (
    CLUSTER_ROLE_BINDING_PREFIX,
    CLUSTER_ROLE_PREFIX,
    TEST_APP_LABEL,
)

if TYPE_CHECKING:
    from .renderer import TemplateRenderer

CLUSTER_ROLE_TEMPLATE = "clusterrole.yaml.j2"
CLUSTER_ROLE_BINDING_TEMPLATE = "clusterrolebinding.yaml.j2"


@dataclass(frozen=True)
class PolicyRule:
    """One RBAC policy rule."""

    api_groups: list[str]
    resources: list[str]
    verbs: list[str]


WORKFLOW_POLICY_RULES = [
    PolicyRule([""], ["pods/log"], ["get", "list"]),
    PolicyRule(["batch"], ["jobs"], ["get", "list", "create", "watch"]),
    PolicyRule([""], ["pods"], ["get", "list", "create", "watch"]),
    PolicyRule([""], ["secrets"], ["get", "create"]),
    PolicyRule([""], ["configmaps"], ["get", "create"]),
    PolicyRule([""], ["persistentvolumes", "persistentvolumeclaims"], ["list", "create"]),
    PolicyRule(["kubeflow.org"], ["pytorchjobs"], ["get", "list", "create", "watch"]),
    PolicyRule([""], ["events"], ["get", "list", "watch"]),
]


def cluster_role_manifest(
    renderer: TemplateRenderer, rules: list[PolicyRule] | None = None
) -> dict[str, Any]:
    """Render the ClusterRole manifest."""
    return renderer.render_manifest(
        CLUSTER_ROLE_TEMPLATE,
        {
            "generate_name": CLUSTER_ROLE_PREFIX,
            "app_label": TEST_APP_LABEL,
            "rules": rules if rules is not None else WORKFLOW_POLICY_RULES,
        },
    )


def cluster_role_binding_manifest(
    renderer: TemplateRenderer,
    service_account: str,
    namespace: str,
    cluster_role: str,
) -> dict[str, Any]:
    """Render a ClusterRoleBinding from a service account to a ClusterRole."""
    return renderer.render_manifest(
        CLUSTER_ROLE_BINDING_TEMPLATE,
        {
            "generate_name": CLUSTER_ROLE_BINDING_PREFIX,
            "app_label": TEST_APP_LABEL,
            "service_account": service_account,
            "namespace": namespace,
            "cluster_role": cluster_role,
        },
    )
