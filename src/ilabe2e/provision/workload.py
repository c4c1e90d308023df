"""Workbench pod and workflow command for the standalone training run.

The workbench pod runs the external workflow script (``standalone.py``)
with a fixed command line derived from the run configuration. The command
surface is mirrored here as a click command so a rendered command line can
be parsed back and checked against the configuration that produced it.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

import click

from ilabe2e._constants import (
    POD_PREFIX,
    SCRIPT_FILE_NAME,
    SCRIPT_MOUNT_PATH,
    SCRIPT_VOLUME_NAME,
    SDG_PIPELINE_DIR,
    TEST_APP_LABEL,
    WORKBENCH_CONTAINER_NAME,
)

if TYPE_CHECKING:
    from ilabe2e.config import RunConfig

    from .renderer import TemplateRenderer

POD_TEMPLATE = "workbench-pod.yaml.j2"
COMMAND_PREFIX = ("python3", SCRIPT_MOUNT_PATH, "run")

# Object-store credentials are injected one key at a time, never via envFrom
OBJECT_STORE_ENV = [
    ("SDG_OBJECT_STORE_ENDPOINT", "endpoint"),
    ("SDG_OBJECT_STORE_BUCKET", "bucket"),
    ("SDG_OBJECT_STORE_ACCESS_KEY", "access_key"),
    ("SDG_OBJECT_STORE_SECRET_KEY", "secret_key"),
    ("SDG_OBJECT_STORE_REGION", "region"),
    ("SDG_OBJECT_STORE_DATA_KEY", "data_key"),
    ("SDG_OBJECT_STORE_VERIFY_TLS", "verify_tls"),
]


@dataclass(frozen=True)
class WorkflowArgs:
    """Arguments passed to ``standalone.py run``."""

    namespace: str
    judge_serving_model_secret: str
    sdg_serving_model_secret: str
    sdg_object_store_secret: str
    sdg_sampling_size: str
    nproc_per_node: int
    storage_class: str
    sdg_pipeline: str = SDG_PIPELINE_DIR
    taxonomy_repo_pr: int = -1
    sdg_in_cluster: bool = True
    force_pull: bool = True

    @classmethod
    def from_config(
        cls,
        cfg: RunConfig,
        namespace: str,
        object_store_secret: str,
        judge_secret: str,
        sdg_secret: str,
    ) -> WorkflowArgs:
        """Derive workflow arguments from the run configuration."""
        return cls(
            namespace=namespace,
            judge_serving_model_secret=judge_secret,
            sdg_serving_model_secret=sdg_secret,
            sdg_object_store_secret=object_store_secret,
            sdg_sampling_size=cfg.sdg_sampling_size,
            nproc_per_node=cfg.num_gpus,
            storage_class=cfg.storage_class,
            taxonomy_repo_pr=cfg.taxonomy_repo_pr,
        )

    def to_command(self) -> list[str]:
        """Render the full container command."""
        cmd = [
            *COMMAND_PREFIX,
            "--namespace", self.namespace,
            "--judge-serving-model-secret", self.judge_serving_model_secret,
            "--sdg-serving-model-secret", self.sdg_serving_model_secret,
        ]  # fmt: skip
        if self.sdg_in_cluster:
            cmd.append("--sdg-in-cluster")
        cmd += [
            "--sdg-pipeline", self.sdg_pipeline,
            "--sdg-sampling-size", self.sdg_sampling_size,
            "--nproc-per-node", str(self.nproc_per_node),
            "--storage-class", self.storage_class,
            "--sdg-object-store-secret", self.sdg_object_store_secret,
            "--taxonomy-repo-pr", str(self.taxonomy_repo_pr),
        ]  # fmt: skip
        if self.force_pull:
            cmd.append("--force-pull")
        return cmd


@click.command(name="run")
@click.option("--namespace", type=str, required=True)
@click.option("--judge-serving-model-secret", type=str, required=True)
@click.option("--sdg-serving-model-secret", type=str, required=True)
@click.option("--sdg-in-cluster", is_flag=True, default=False)
@click.option("--sdg-pipeline", type=str, default=SDG_PIPELINE_DIR)
@click.option("--sdg-sampling-size", type=str, required=True)
@click.option("--nproc-per-node", type=int, default=1)
@click.option("--storage-class", type=str, required=True)
@click.option("--sdg-object-store-secret", type=str, required=True)
@click.option("--taxonomy-repo-pr", type=int, default=-1)
@click.option("--force-pull", is_flag=True, default=False)
def workflow_run_command(**kwargs: Any) -> None:
    """Command-line surface of ``standalone.py run``."""


def parse_workflow_command(command: list[str]) -> WorkflowArgs:
    """Parse a rendered container command back into WorkflowArgs.

    Raises:
        ValueError: If the command is not a ``standalone.py run`` invocation
        click.UsageError: If the arguments don't match the workflow surface
    """
    prefix = tuple(command[: len(COMMAND_PREFIX)])
    if prefix != COMMAND_PREFIX:
        raise ValueError(f"Not a workflow run command: {' '.join(prefix)}")

    ctx = workflow_run_command.make_context(
        "run", list(command[len(COMMAND_PREFIX) :])
    )
    return WorkflowArgs(**ctx.params)


def workbench_pod_manifest(
    renderer: TemplateRenderer,
    cfg: RunConfig,
    args: WorkflowArgs,
    service_account: str,
    config_map: str,
) -> dict[str, Any]:
    """Render the workbench pod manifest."""
    context = {
        "generate_name": POD_PREFIX,
        "namespace": args.namespace,
        "app_label": TEST_APP_LABEL,
        "service_account": service_account,
        "container_name": WORKBENCH_CONTAINER_NAME,
        "image": cfg.workbench_image,
        "secret_env": [{"name": name, "key": key} for name, key in OBJECT_STORE_ENV],
        "object_store_secret": args.sdg_object_store_secret,
        "judge_secret": args.judge_serving_model_secret,
        "script_volume": SCRIPT_VOLUME_NAME,
        "script_mount_path": SCRIPT_MOUNT_PATH,
        "script_file_name": SCRIPT_FILE_NAME,
        "config_map": config_map,
        "command": args.to_command(),
    }
    return renderer.render_manifest(POD_TEMPLATE, context)


def describe_args(args: WorkflowArgs) -> dict[str, Any]:
    """Plain-dict view of the workflow arguments, for journaling."""
    return asdict(args)
