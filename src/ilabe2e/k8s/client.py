"""Kubernetes client for ilab-e2e."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

import urllib3.exceptions
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from ilabe2e._constants import TEST_APP_LABEL

logger = logging.getLogger(__name__)


class K8sError(Exception):
    """Base exception for Kubernetes errors."""

    pass


class K8sConnectionError(K8sError):
    """Raised when Kubernetes cluster is unreachable."""

    pass


class K8sResourceError(K8sError):
    """Raised when resource operations fail.

    ``status`` carries the HTTP status of the underlying API error, if any.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


# Raised by the REST layer when the API server cannot be reached at all
TRANSPORT_ERRORS = (urllib3.exceptions.HTTPError, OSError)


class PodPhase(str, Enum):
    """Coarse pod lifecycle phase as reported by the API server."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: str | None) -> PodPhase:
        """Map a raw phase string to the enum, defaulting to UNKNOWN."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


def _meta(
    name: str | None = None,
    generate_name: str | None = None,
    namespace: str | None = None,
) -> client.V1ObjectMeta:
    return client.V1ObjectMeta(
        name=name,
        generate_name=generate_name,
        namespace=namespace,
        labels={"app": TEST_APP_LABEL},
    )


class K8sClient:
    """Kubernetes client for test resource management.

    This client wraps the official kubernetes-client. Every create call is
    synchronous and returns the object as acknowledged by the API server,
    including any server-generated name. API failures surface as
    ``K8sResourceError``; an API server that cannot be reached at all
    surfaces as ``K8sConnectionError``.
    """

    def __init__(self, context: str = ""):
        """Initialize Kubernetes client.

        Args:
            context: kubeconfig context (empty = in-cluster, then current)
        """
        try:
            if context:
                config.load_kube_config(context=context)
            else:
                # Try in-cluster config first, fall back to kubeconfig
                try:
                    config.load_incluster_config()
                except config.ConfigException:
                    config.load_kube_config()
        except Exception as e:
            raise K8sConnectionError(f"Failed to load Kubernetes config: {e}")  # noqa: B904

        self._core_v1 = client.CoreV1Api()
        self._rbac_v1 = client.RbacAuthorizationV1Api()

    def test_connectivity(self) -> tuple[bool, str]:
        """Test connectivity to the Kubernetes cluster.

        Returns:
            Tuple of (success, message)
        """
        try:
            # Try to get API versions - lightweight call
            version = client.VersionApi().get_code()
            return True, f"Connected to Kubernetes {version.git_version}"
        except ApiException as e:
            return False, f"API error: {e.reason}"
        except Exception as e:
            return False, f"Connection error: {e}"

    # ------------------------------------------------------------------
    # Namespaces
    # ------------------------------------------------------------------

    def namespace_exists(self, name: str) -> bool:
        """Check if a namespace exists."""
        try:
            self._core_v1.read_namespace(name)
            return True
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            if e.status == 404:
                return False
            raise K8sResourceError(f"Error checking namespace: {e}", e.status)  # noqa: B904

    def create_namespace(
        self, name: str | None = None, generate_name: str | None = None
    ) -> client.V1Namespace:
        """Create a namespace with a fixed or server-generated name.

        Args:
            name: Explicit namespace name
            generate_name: Prefix for a server-generated name (used when name is empty)

        Returns:
            The created V1Namespace
        """
        ns = client.V1Namespace(metadata=_meta(name=name, generate_name=generate_name))
        try:
            created = self._core_v1.create_namespace(ns)
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            raise K8sResourceError(f"Failed to create namespace: {e}", e.status)  # noqa: B904
        logger.info("Created Namespace %s", created.metadata.name)
        return created

    def delete_namespace(self, name: str) -> bool:
        """Delete a namespace.

        Returns:
            True if deleted, False if it didn't exist
        """
        try:
            self._core_v1.delete_namespace(name)
            return True
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            if e.status == 404:
                return False
            raise K8sResourceError(f"Failed to delete namespace: {e}", e.status)  # noqa: B904

    # ------------------------------------------------------------------
    # ConfigMaps
    # ------------------------------------------------------------------

    def create_config_map(
        self, namespace: str, data: dict[str, str], generate_name: str
    ) -> client.V1ConfigMap:
        """Create a ConfigMap holding ``data``."""
        cm = client.V1ConfigMap(
            metadata=_meta(generate_name=generate_name, namespace=namespace),
            data=data,
        )
        try:
            created = self._core_v1.create_namespaced_config_map(namespace, cm)
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            raise K8sResourceError(f"Failed to create configmap: {e}", e.status)  # noqa: B904
        logger.info("Created ConfigMap %s/%s", namespace, created.metadata.name)
        return created

    def delete_config_map(self, name: str, namespace: str) -> bool:
        """Delete a ConfigMap. Returns False if it didn't exist."""
        try:
            self._core_v1.delete_namespaced_config_map(name, namespace)
            return True
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            if e.status == 404:
                return False
            raise K8sResourceError(f"Failed to delete configmap: {e}", e.status)  # noqa: B904

    # ------------------------------------------------------------------
    # ServiceAccounts
    # ------------------------------------------------------------------

    def get_service_account(self, name: str, namespace: str) -> client.V1ServiceAccount | None:
        """Read a ServiceAccount, or None if it doesn't exist."""
        try:
            return self._core_v1.read_namespaced_service_account(name, namespace)
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            if e.status == 404:
                return None
            raise K8sResourceError(  # noqa: B904
                f"Error reading service account {namespace}/{name}: {e}", e.status
            )

    def create_service_account(
        self, namespace: str, generate_name: str
    ) -> client.V1ServiceAccount:
        """Create a ServiceAccount with a server-generated name."""
        sa = client.V1ServiceAccount(
            metadata=_meta(generate_name=generate_name, namespace=namespace)
        )
        try:
            created = self._core_v1.create_namespaced_service_account(namespace, sa)
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            raise K8sResourceError(  # noqa: B904
                f"Failed to create service account: {e}", e.status
            )
        logger.info("Created ServiceAccount %s/%s", namespace, created.metadata.name)
        return created

    def delete_service_account(self, name: str, namespace: str) -> bool:
        """Delete a ServiceAccount. Returns False if it didn't exist."""
        try:
            self._core_v1.delete_namespaced_service_account(name, namespace)
            return True
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            if e.status == 404:
                return False
            raise K8sResourceError(  # noqa: B904
                f"Failed to delete service account: {e}", e.status
            )

    # ------------------------------------------------------------------
    # Cluster-scoped RBAC
    # ------------------------------------------------------------------

    def create_cluster_role(self, manifest: dict[str, Any]) -> client.V1ClusterRole:
        """Create a ClusterRole from a manifest dict."""
        try:
            created = self._rbac_v1.create_cluster_role(manifest)
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            raise K8sResourceError(f"Failed to create cluster role: {e}", e.status)  # noqa: B904
        logger.info("Created ClusterRole %s", created.metadata.name)
        return created

    def delete_cluster_role(self, name: str) -> bool:
        """Delete a ClusterRole. Returns False if it didn't exist."""
        try:
            self._rbac_v1.delete_cluster_role(name)
            return True
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            if e.status == 404:
                return False
            raise K8sResourceError(f"Failed to delete cluster role: {e}", e.status)  # noqa: B904

    def create_cluster_role_binding(
        self, manifest: dict[str, Any]
    ) -> client.V1ClusterRoleBinding:
        """Create a ClusterRoleBinding from a manifest dict."""
        try:
            created = self._rbac_v1.create_cluster_role_binding(manifest)
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            raise K8sResourceError(  # noqa: B904
                f"Failed to create cluster role binding: {e}", e.status
            )
        logger.info("Created ClusterRoleBinding %s", created.metadata.name)
        return created

    def delete_cluster_role_binding(self, name: str) -> bool:
        """Delete a ClusterRoleBinding. Returns False if it didn't exist."""
        try:
            self._rbac_v1.delete_cluster_role_binding(name)
            return True
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            if e.status == 404:
                return False
            raise K8sResourceError(  # noqa: B904
                f"Failed to delete cluster role binding: {e}", e.status
            )

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def create_secret(
        self, namespace: str, string_data: dict[str, str], generate_name: str
    ) -> client.V1Secret:
        """Create an Opaque secret from plain string values."""
        secret = client.V1Secret(
            metadata=_meta(generate_name=generate_name, namespace=namespace),
            type="Opaque",
            string_data=string_data,
        )
        try:
            created = self._core_v1.create_namespaced_secret(namespace, secret)
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            raise K8sResourceError(f"Failed to create secret: {e}", e.status)  # noqa: B904
        logger.info("Created Secret %s/%s", namespace, created.metadata.name)
        return created

    def delete_secret(self, name: str, namespace: str) -> bool:
        """Delete a Secret. Returns False if it didn't exist."""
        try:
            self._core_v1.delete_namespaced_secret(name, namespace)
            return True
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            if e.status == 404:
                return False
            raise K8sResourceError(f"Failed to delete secret: {e}", e.status)  # noqa: B904

    # ------------------------------------------------------------------
    # Pods
    # ------------------------------------------------------------------

    def create_pod(self, namespace: str, manifest: dict[str, Any]) -> client.V1Pod:
        """Create a pod from a manifest dict."""
        try:
            created = self._core_v1.create_namespaced_pod(namespace, manifest)
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            raise K8sResourceError(f"Failed to create pod: {e}", e.status)  # noqa: B904
        logger.info("Created Pod %s/%s", namespace, created.metadata.name)
        return created

    def get_pod_phase(self, name: str, namespace: str) -> PodPhase:
        """Read the current phase of a pod.

        Raises:
            K8sResourceError: On any API error, including 404
            K8sConnectionError: If the API server cannot be reached
        """
        try:
            pod = self._core_v1.read_namespaced_pod(name, namespace)
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            raise K8sResourceError(  # noqa: B904
                f"Error reading pod {namespace}/{name}: {e.reason}", e.status
            )
        return PodPhase.parse(pod.status.phase if pod.status else None)

    def delete_pod(self, name: str, namespace: str) -> bool:
        """Delete a pod. Returns False if it didn't exist."""
        try:
            self._core_v1.delete_namespaced_pod(name, namespace)
            return True
        except TRANSPORT_ERRORS as e:
            raise K8sConnectionError(f"Kubernetes API unreachable: {e}") from e
        except ApiException as e:
            if e.status == 404:
                return False
            raise K8sResourceError(f"Failed to delete pod: {e}", e.status)  # noqa: B904


def get_k8s_client(context: str = "") -> K8sClient:
    """Create a Kubernetes client.

    Args:
        context: Kubernetes context (empty = in-cluster, then current)

    Returns:
        K8sClient instance
    """
    return K8sClient(context=context)
