"""Resource provisioning for ilab-e2e runs."""

from .provisioner import (
    PreconditionError,
    ProvisionedResources,
    ResourceProvisioner,
    ResourceRef,
    ServiceAccountNotFound,
)
from .rbac import WORKFLOW_POLICY_RULES, PolicyRule
from .renderer import TemplateRenderer
from .secrets import judge_secret_data, object_store_secret_data, sdg_secret_data
from .workload import WorkflowArgs, parse_workflow_command, workbench_pod_manifest

__all__ = [
    "ResourceProvisioner",
    "ResourceRef",
    "ProvisionedResources",
    "PreconditionError",
    "ServiceAccountNotFound",
    "PolicyRule",
    "WORKFLOW_POLICY_RULES",
    "TemplateRenderer",
    "object_store_secret_data",
    "judge_secret_data",
    "sdg_secret_data",
    "WorkflowArgs",
    "parse_workflow_command",
    "workbench_pod_manifest",
]
