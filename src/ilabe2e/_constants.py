"""Shared constants for ilab-e2e."""

# Label applied to every object a run creates
TEST_APP_LABEL = "ilab-on-ocp-e2e"

# Defaults used when the corresponding environment variable is absent
DEFAULT_WORKBENCH_IMAGE = (
    "quay.io/opendatahub/workbench-images:jupyter-datascience-ubi9-python-3.11-20241004-609ffb8"
)
DEFAULT_STORAGE_CLASS = "nfs-csi"
DEFAULT_SCRIPT_PATH = "standalone/standalone.py"
DEFAULT_TEST_RUN_TIMEOUT = 10 * 60 * 60  # 10h
DEFAULT_POLL_INTERVAL = 2

# Reduced sample size for the skills recipe keeps SDG short. Set
# SDG_SAMPLING_SIZE=1.0 for a production-level run.
DEFAULT_SDG_SAMPLING_SIZE = "0.0002"
SDG_PIPELINE_DIR = "/usr/share/instructlab/sdg/pipelines/agentic"
DEFAULT_TAXONOMY_REPO_PR = -1

# Where the workflow script lands inside the workbench pod
SCRIPT_FILE_NAME = "standalone.py"
SCRIPT_MOUNT_PATH = "/home/standalone.py"
SCRIPT_VOLUME_NAME = "script-volume"
WORKBENCH_CONTAINER_NAME = "workbench-container"

# OpenShift injects this ConfigMap into every namespace
OPENSHIFT_ROOT_CA_CONFIGMAP = "kube-root-ca.crt"
OPENSHIFT_ROOT_CA_KEY = "ca.crt"

# Server-side generateName prefixes
NAMESPACE_PREFIX = "test-ns-"
CONFIGMAP_PREFIX = "test-cm-"
SERVICE_ACCOUNT_PREFIX = "test-sa-"
CLUSTER_ROLE_PREFIX = "test-cr-"
CLUSTER_ROLE_BINDING_PREFIX = "test-crb-"
SECRET_PREFIX = "test-secret-"
POD_PREFIX = "test-workbench-pod-"

# Unified output directory; journal/ holds session-scoped JSONL provenance logs
DEFAULT_OUTPUT_DIR = "./ilab-e2e-output"
