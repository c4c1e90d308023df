"""Shared fixtures for the ilab-e2e test suite."""

from __future__ import annotations

import itertools
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from ilabe2e.config import RunConfig, resolve_run_config
from ilabe2e.k8s import PodPhase

REQUIRED_ENV = {
    "AWS_STORAGE_BUCKET": "sdg-data",
    "SDG_OBJECT_STORE_DATA_KEY": "data.tar.gz",
    "JUDGE_API_KEY": "judge-token",
    "JUDGE_NAME": "prometheus-8x7b",
    "JUDGE_ENDPOINT": "https://judge.example.com/v1",
    "SDG_SERVING_MODEL_API_KEY": "sdg-token",
    "SDG_NAME": "mixtral-8x7b",
    "SDG_ENDPOINT": "https://sdg.example.com/v1",
}


def make_env(**overrides: str | None) -> dict[str, str]:
    """Build an environment mapping with every required variable set.

    Pass ``NAME=None`` to remove a variable. This is the canonical
    environment factory for tests; prefer it over hand-built dicts.
    """
    env = dict(REQUIRED_ENV)
    for name, value in overrides.items():
        if value is None:
            env.pop(name, None)
        else:
            env[name] = value
    return env


def make_config(**overrides: str | None) -> RunConfig:
    """Resolve a RunConfig from ``make_env(**overrides)``."""
    return resolve_run_config(make_env(**overrides))


def k8s_object(name: str) -> SimpleNamespace:
    """Stand-in for an API object as returned by a create call."""
    return SimpleNamespace(metadata=SimpleNamespace(name=name))


@pytest.fixture
def run_config() -> RunConfig:
    """A default RunConfig for tests that don't care about specifics."""
    return make_config()


@pytest.fixture
def script_file(tmp_path):
    """A stand-in workflow script on disk."""
    path = tmp_path / "standalone.py"
    path.write_text("print('standalone')\n")
    return path


@pytest.fixture
def workflow_env(script_file) -> dict[str, str]:
    """Complete environment pointing at the stand-in workflow script."""
    return make_env(ILAB_STANDALONE_SCRIPT=str(script_file))


@pytest.fixture
def mock_k8s_client():
    """Pre-configured mock K8sClient for unit tests.

    Create calls mimic server-side name generation: the returned object's
    name is the requested prefix plus a short suffix.
    """
    counter = itertools.count(1)

    def generated(generate_name: str) -> SimpleNamespace:
        return k8s_object(f"{generate_name}{next(counter):05d}")

    client = MagicMock()
    client.test_connectivity.return_value = (True, "Connected")
    client.namespace_exists.return_value = False
    client.create_namespace.side_effect = lambda name=None, generate_name=None: (
        k8s_object(name) if name else generated(generate_name)
    )
    client.create_config_map.side_effect = lambda namespace, data, generate_name: generated(
        generate_name
    )
    client.get_service_account.return_value = None
    client.create_service_account.side_effect = lambda namespace, generate_name: generated(
        generate_name
    )
    client.create_cluster_role.side_effect = lambda manifest: generated(
        manifest["metadata"]["generateName"]
    )
    client.create_cluster_role_binding.side_effect = lambda manifest: generated(
        manifest["metadata"]["generateName"]
    )
    client.create_secret.side_effect = lambda namespace, string_data, generate_name: generated(
        generate_name
    )
    client.create_pod.side_effect = lambda namespace, manifest: generated(
        manifest["metadata"]["generateName"]
    )
    client.get_pod_phase.return_value = PodPhase.SUCCEEDED
    return client
