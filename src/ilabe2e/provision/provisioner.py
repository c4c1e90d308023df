"""Resource provisioning for one end-to-end run.

Creates, in order: namespace, script ConfigMap, ServiceAccount,
ClusterRole, ClusterRoleBinding, three credential secrets, and the
workbench pod. Every create blocks until the API server acknowledges it
and registers its own teardown on the shared ``CleanupStack``.

Ownership rules:
- Cluster-scoped RBAC is always deleted at teardown.
- Namespaced children are deleted only when this run created the
  namespace; a reused namespace keeps them.
- A reused namespace or ServiceAccount is never deleted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING

from ilabe2e._constants import (
    CONFIGMAP_PREFIX,
    NAMESPACE_PREFIX,
    SCRIPT_FILE_NAME,
    SECRET_PREFIX,
    SERVICE_ACCOUNT_PREFIX,
)
from ilabe2e.k8s import K8sError

from .rbac import PolicyRule, cluster_role_binding_manifest, cluster_role_manifest
from .renderer import TemplateRenderer
from .secrets import judge_secret_data, object_store_secret_data, sdg_secret_data
from .workload import WorkflowArgs, workbench_pod_manifest

if TYPE_CHECKING:
    from ilabe2e.config import RunConfig
    from ilabe2e.k8s import K8sClient
    from ilabe2e.teardown import CleanupStack

logger = logging.getLogger(__name__)


class PreconditionError(Exception):
    """Raised when the environment cannot host the run (reported as skipped)."""

    pass


class ServiceAccountNotFound(PreconditionError):
    """Raised when an explicitly named ServiceAccount cannot be found."""

    pass


@dataclass
class ResourceRef:
    """A cluster object touched by the run."""

    kind: str
    name: str
    namespace: str | None
    owned: bool

    def __str__(self) -> str:
        where = f"{self.namespace}/" if self.namespace else ""
        return f"{self.kind} {where}{self.name}"


@dataclass
class ProvisionedResources:
    """Everything provisioned (or borrowed) for one run."""

    namespace: ResourceRef | None = None
    config_map: ResourceRef | None = None
    service_account: ResourceRef | None = None
    cluster_role: ResourceRef | None = None
    cluster_role_binding: ResourceRef | None = None
    object_store_secret: ResourceRef | None = None
    judge_secret: ResourceRef | None = None
    sdg_secret: ResourceRef | None = None
    pod: ResourceRef | None = None

    def all(self) -> list[ResourceRef]:
        """All resources in provisioning order."""
        refs = (getattr(self, f.name) for f in fields(self))
        return [ref for ref in refs if ref is not None]

    def created(self) -> list[ResourceRef]:
        """Resources this run created (excludes borrowed ones)."""
        return [ref for ref in self.all() if ref.owned]


class ResourceProvisioner:
    """Creates the disposable resource set for a run."""

    def __init__(
        self,
        k8s: K8sClient,
        config: RunConfig,
        cleanup: CleanupStack,
        renderer: TemplateRenderer | None = None,
        on_created: Callable[[ResourceRef], None] | None = None,
    ):
        """Initialize provisioner.

        Args:
            k8s: Kubernetes client
            config: Resolved run configuration
            cleanup: Stack that receives one teardown action per created resource
            renderer: Manifest renderer (default: package templates)
            on_created: Called with each ResourceRef once it exists
        """
        self.k8s = k8s
        self.config = config
        self.cleanup = cleanup
        self.renderer = renderer or TemplateRenderer()
        self.resources = ProvisionedResources()
        self._on_created = on_created

    @property
    def namespace(self) -> str:
        """Name of the namespace in use (ensure_namespace must run first)."""
        if self.resources.namespace is None:
            raise RuntimeError("Namespace not provisioned yet")
        return self.resources.namespace.name

    @property
    def owns_namespace(self) -> bool:
        """True if this run created the namespace."""
        return self.resources.namespace is not None and self.resources.namespace.owned

    def _track(self, ref: ResourceRef, delete_fn: Callable[[], object] | None) -> ResourceRef:
        if delete_fn is not None:
            self.cleanup.push(str(ref), delete_fn)
        if self._on_created is not None:
            self._on_created(ref)
        return ref

    def _namespaced_delete(self, fn: Callable[[], object]) -> Callable[[], object] | None:
        # Children of a borrowed namespace follow that namespace's lifecycle
        return fn if self.owns_namespace else None

    # ------------------------------------------------------------------
    # Namespace / ConfigMap / ServiceAccount
    # ------------------------------------------------------------------

    def ensure_namespace(self) -> str:
        """Reuse the configured namespace, or create one.

        - Configured and present: borrowed, never deleted.
        - Configured but absent: created with that name, owned.
        - Not configured: created with a generated name, owned.
        """
        name = self.config.namespace
        if name and self.k8s.namespace_exists(name):
            logger.info("Using existing namespace %s", name)
            ref = ResourceRef("Namespace", name, None, owned=False)
            self.resources.namespace = self._track(ref, None)
            return name

        if name:
            created = self.k8s.create_namespace(name=name)
        else:
            created = self.k8s.create_namespace(generate_name=NAMESPACE_PREFIX)
        ns_name = created.metadata.name
        ref = ResourceRef("Namespace", ns_name, None, owned=True)
        self.resources.namespace = self._track(ref, lambda: self.k8s.delete_namespace(ns_name))
        return ns_name

    def create_config_map(self, data: dict[str, str]) -> str:
        """Create the ConfigMap that carries the workflow script."""
        ns = self.namespace
        created = self.k8s.create_config_map(ns, data, generate_name=CONFIGMAP_PREFIX)
        name = created.metadata.name
        ref = ResourceRef("ConfigMap", name, ns, owned=True)
        self.resources.config_map = self._track(
            ref, self._namespaced_delete(lambda: self.k8s.delete_config_map(name, ns))
        )
        return name

    def resolve_service_account(self) -> str:
        """Reuse the configured ServiceAccount, or create one.

        Raises:
            ServiceAccountNotFound: A name was configured but the account
                does not exist or cannot be read
        """
        ns = self.namespace
        name = self.config.service_account
        if name:
            try:
                found = self.k8s.get_service_account(name, ns)
            except K8sError as e:
                raise ServiceAccountNotFound(
                    f"Service account '{name}' provided via TEST_SERVICE_ACCOUNT "
                    f"could not be read in namespace '{ns}': {e}"
                ) from e
            if found is None:
                raise ServiceAccountNotFound(
                    f"Service account '{name}' provided via TEST_SERVICE_ACCOUNT "
                    f"does not exist in namespace '{ns}'"
                )
            logger.info("Using existing service account %s/%s", ns, name)
            ref = ResourceRef("ServiceAccount", name, ns, owned=False)
            self.resources.service_account = self._track(ref, None)
            return name

        created = self.k8s.create_service_account(ns, generate_name=SERVICE_ACCOUNT_PREFIX)
        sa_name = created.metadata.name
        ref = ResourceRef("ServiceAccount", sa_name, ns, owned=True)
        self.resources.service_account = self._track(
            ref, self._namespaced_delete(lambda: self.k8s.delete_service_account(sa_name, ns))
        )
        return sa_name

    # ------------------------------------------------------------------
    # Cluster-scoped RBAC (always torn down)
    # ------------------------------------------------------------------

    def create_cluster_role(self, rules: list[PolicyRule] | None = None) -> str:
        """Create the workflow ClusterRole."""
        manifest = cluster_role_manifest(self.renderer, rules)
        created = self.k8s.create_cluster_role(manifest)
        name = created.metadata.name
        ref = ResourceRef("ClusterRole", name, None, owned=True)
        self.resources.cluster_role = self._track(
            ref, lambda: self.k8s.delete_cluster_role(name)
        )
        return name

    def create_cluster_role_binding(self, service_account: str, cluster_role: str) -> str:
        """Bind the service account to the ClusterRole."""
        manifest = cluster_role_binding_manifest(
            self.renderer, service_account, self.namespace, cluster_role
        )
        created = self.k8s.create_cluster_role_binding(manifest)
        name = created.metadata.name
        ref = ResourceRef("ClusterRoleBinding", name, None, owned=True)
        self.resources.cluster_role_binding = self._track(
            ref, lambda: self.k8s.delete_cluster_role_binding(name)
        )
        return name

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def create_secret(self, data: dict[str, str]) -> ResourceRef:
        """Create an Opaque secret in the run namespace."""
        ns = self.namespace
        created = self.k8s.create_secret(ns, data, generate_name=SECRET_PREFIX)
        name = created.metadata.name
        ref = ResourceRef("Secret", name, ns, owned=True)
        return self._track(
            ref, self._namespaced_delete(lambda: self.k8s.delete_secret(name, ns))
        )

    def create_object_store_secret(self) -> str:
        """Secret holding the SDG object-store credentials."""
        ref = self.create_secret(object_store_secret_data(self.config.object_store))
        self.resources.object_store_secret = ref
        return ref.name

    def create_judge_secret(self) -> str:
        """Secret holding the judge model credentials."""
        if self.config.judge.ca_cert_from_openshift:
            logger.info("Using OpenShift CA as Judge CA certificate")
        ref = self.create_secret(judge_secret_data(self.config.judge))
        self.resources.judge_secret = ref
        return ref.name

    def create_sdg_secret(self) -> str:
        """Secret holding the SDG serving model credentials."""
        if self.config.sdg.ca_cert_from_openshift:
            logger.info("Using OpenShift CA as SDG CA certificate")
        ref = self.create_secret(sdg_secret_data(self.config.sdg))
        self.resources.sdg_secret = ref
        return ref.name

    # ------------------------------------------------------------------
    # Workload
    # ------------------------------------------------------------------

    def create_workload_pod(
        self,
        service_account: str,
        config_map: str,
        object_store_secret: str,
        judge_secret: str,
        sdg_secret: str,
    ) -> tuple[str, WorkflowArgs]:
        """Create the workbench pod that runs the workflow script.

        Returns:
            Tuple of (pod name, workflow arguments baked into its command)
        """
        ns = self.namespace
        args = WorkflowArgs.from_config(
            self.config,
            namespace=ns,
            object_store_secret=object_store_secret,
            judge_secret=judge_secret,
            sdg_secret=sdg_secret,
        )
        manifest = workbench_pod_manifest(
            self.renderer, self.config, args, service_account, config_map
        )
        created = self.k8s.create_pod(ns, manifest)
        name = created.metadata.name
        ref = ResourceRef("Pod", name, ns, owned=True)
        self.resources.pod = self._track(
            ref, self._namespaced_delete(lambda: self.k8s.delete_pod(name, ns))
        )
        return name, args

    def provision_all(self, script_content: str) -> tuple[str, WorkflowArgs]:
        """Run the full provisioning sequence.

        Args:
            script_content: Workflow script source, mounted into the pod

        Returns:
            Tuple of (pod name, workflow arguments)

        Raises:
            PreconditionError: The run should be skipped
            K8sResourceError: A create call was rejected
        """
        self.ensure_namespace()
        config_map = self.create_config_map({SCRIPT_FILE_NAME: script_content})
        service_account = self.resolve_service_account()
        cluster_role = self.create_cluster_role()
        self.create_cluster_role_binding(service_account, cluster_role)
        object_store_secret = self.create_object_store_secret()
        sdg_secret = self.create_sdg_secret()
        judge_secret = self.create_judge_secret()
        return self.create_workload_pod(
            service_account, config_map, object_store_secret, judge_secret, sdg_secret
        )
