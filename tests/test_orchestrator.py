"""Tests for run_workflow end-to-end orchestration (cluster mocked)."""

from __future__ import annotations

import threading
from unittest.mock import patch

import pytest
import urllib3.exceptions

from ilabe2e.journal import EventType, Journal
from ilabe2e.k8s import K8sConnectionError, K8sResourceError, PodPhase
from ilabe2e.orchestrator import RunResult, RunStatus, run_workflow
from tests.conftest import make_config, make_env

CREATE_METHODS = (
    "create_namespace",
    "create_config_map",
    "create_service_account",
    "create_cluster_role",
    "create_cluster_role_binding",
    "create_secret",
    "create_pod",
)


def _assert_nothing_created(client) -> None:
    for method in CREATE_METHODS:
        getattr(client, method).assert_not_called()


class TestRunResult:
    """Tests for RunResult helpers."""

    def test_succeeded(self):
        assert RunResult(RunStatus.SUCCEEDED, "ok").succeeded is True
        assert RunResult(RunStatus.FAILED, "no").succeeded is False

    def test_skipped(self):
        assert RunResult(RunStatus.SKIPPED, "env").skipped is True
        assert RunResult(RunStatus.TIMEOUT, "slow").skipped is False


class TestSuccessfulRun:
    """A full run against a cooperative cluster."""

    def test_succeeds(self, mock_k8s_client, workflow_env):
        result = run_workflow(environ=workflow_env, k8s=mock_k8s_client)
        assert result.status == RunStatus.SUCCEEDED
        assert result.succeeded
        assert result.pod_phase == PodPhase.SUCCEEDED
        assert result.cleanup_errors == []
        assert result.elapsed_seconds >= 0
        assert result.workflow_args is not None

    def test_provisions_one_of_each(self, mock_k8s_client, workflow_env):
        run_workflow(environ=workflow_env, k8s=mock_k8s_client)
        for method in CREATE_METHODS:
            expected = 3 if method == "create_secret" else 1
            assert getattr(mock_k8s_client, method).call_count == expected, method

    def test_deletes_everything_created(self, mock_k8s_client, workflow_env):
        result = run_workflow(environ=workflow_env, k8s=mock_k8s_client)
        r = result.resources
        mock_k8s_client.delete_pod.assert_called_once_with(r.pod.name, r.pod.namespace)
        assert mock_k8s_client.delete_secret.call_count == 3
        mock_k8s_client.delete_cluster_role_binding.assert_called_once_with(
            r.cluster_role_binding.name
        )
        mock_k8s_client.delete_cluster_role.assert_called_once_with(r.cluster_role.name)
        mock_k8s_client.delete_service_account.assert_called_once()
        mock_k8s_client.delete_config_map.assert_called_once()
        mock_k8s_client.delete_namespace.assert_called_once_with(r.namespace.name)

    def test_script_shipped_in_config_map(self, mock_k8s_client, workflow_env):
        run_workflow(environ=workflow_env, k8s=mock_k8s_client)
        data = mock_k8s_client.create_config_map.call_args[0][1]
        assert data == {"standalone.py": "print('standalone')\n"}

    def test_prebuilt_config_skips_environment(self, mock_k8s_client, script_file):
        cfg = make_config(ILAB_STANDALONE_SCRIPT=str(script_file))
        result = run_workflow(environ={}, k8s=mock_k8s_client, config=cfg)
        assert result.succeeded


class TestFailedPod:
    """A workload pod that ends in Failed."""

    def test_failed_pod_fails_run_and_cleans_up(self, mock_k8s_client, workflow_env):
        mock_k8s_client.get_pod_phase.return_value = PodPhase.FAILED
        result = run_workflow(environ=workflow_env, k8s=mock_k8s_client)

        assert result.status == RunStatus.FAILED
        assert result.pod_phase == PodPhase.FAILED
        mock_k8s_client.delete_pod.assert_called_once()
        assert mock_k8s_client.delete_secret.call_count == 3
        mock_k8s_client.delete_cluster_role.assert_called_once()
        mock_k8s_client.delete_cluster_role_binding.assert_called_once()
        mock_k8s_client.delete_service_account.assert_called_once()
        mock_k8s_client.delete_config_map.assert_called_once()
        mock_k8s_client.delete_namespace.assert_called_once()

    def test_without_fail_fast_times_out(self, mock_k8s_client, script_file):
        mock_k8s_client.get_pod_phase.return_value = PodPhase.FAILED
        cfg = make_config(ILAB_STANDALONE_SCRIPT=str(script_file)).model_copy(
            update={"fail_fast": False, "timeout_seconds": 0.05, "poll_interval_seconds": 0.01}
        )
        result = run_workflow(k8s=mock_k8s_client, config=cfg)
        assert result.status == RunStatus.TIMEOUT
        mock_k8s_client.delete_namespace.assert_called_once()


class TestTimeout:
    """A pod that never finishes."""

    def test_timeout(self, mock_k8s_client, script_file):
        mock_k8s_client.get_pod_phase.return_value = PodPhase.RUNNING
        cfg = make_config(ILAB_STANDALONE_SCRIPT=str(script_file)).model_copy(
            update={"timeout_seconds": 0.05, "poll_interval_seconds": 0.01}
        )
        result = run_workflow(k8s=mock_k8s_client, config=cfg)
        assert result.status == RunStatus.TIMEOUT
        assert result.elapsed_seconds >= 0.05
        assert result.pod_phase == PodPhase.RUNNING
        mock_k8s_client.delete_namespace.assert_called_once()


class TestSkipped:
    """Precondition failures skip the run."""

    def test_missing_bucket_skips_without_cluster_calls(self, mock_k8s_client, script_file):
        env = make_env(AWS_STORAGE_BUCKET=None, ILAB_STANDALONE_SCRIPT=str(script_file))
        result = run_workflow(environ=env, k8s=mock_k8s_client)
        assert result.status == RunStatus.SKIPPED
        assert result.skipped
        assert "AWS_STORAGE_BUCKET" in result.message
        assert mock_k8s_client.method_calls == []

    def test_missing_env_never_builds_client(self, script_file):
        env = make_env(JUDGE_API_KEY=None, ILAB_STANDALONE_SCRIPT=str(script_file))
        with patch("ilabe2e.orchestrator.get_k8s_client") as factory:
            result = run_workflow(environ=env)
        assert result.skipped
        factory.assert_not_called()

    def test_named_service_account_missing_skips(self, mock_k8s_client, script_file):
        env = make_env(TEST_SERVICE_ACCOUNT="pipeline-sa", ILAB_STANDALONE_SCRIPT=str(script_file))
        result = run_workflow(environ=env, k8s=mock_k8s_client)

        assert result.status == RunStatus.SKIPPED
        assert "pipeline-sa" in result.message
        mock_k8s_client.create_service_account.assert_not_called()
        mock_k8s_client.create_cluster_role.assert_not_called()
        mock_k8s_client.create_secret.assert_not_called()
        mock_k8s_client.create_pod.assert_not_called()
        # Already-made resources are still torn down
        mock_k8s_client.delete_config_map.assert_called_once()
        mock_k8s_client.delete_namespace.assert_called_once()

    def test_unreadable_service_account_skips(self, mock_k8s_client, script_file):
        mock_k8s_client.get_service_account.side_effect = K8sResourceError("forbidden", 403)
        env = make_env(TEST_SERVICE_ACCOUNT="pipeline-sa", ILAB_STANDALONE_SCRIPT=str(script_file))
        result = run_workflow(environ=env, k8s=mock_k8s_client)

        assert result.status == RunStatus.SKIPPED
        assert "forbidden" in result.message
        mock_k8s_client.create_pod.assert_not_called()
        mock_k8s_client.delete_namespace.assert_called_once()

    def test_named_service_account_found_is_used(self, mock_k8s_client, script_file):
        mock_k8s_client.get_service_account.return_value = object()
        env = make_env(TEST_SERVICE_ACCOUNT="pipeline-sa", ILAB_STANDALONE_SCRIPT=str(script_file))
        result = run_workflow(environ=env, k8s=mock_k8s_client)

        assert result.succeeded
        mock_k8s_client.create_service_account.assert_not_called()
        binding = mock_k8s_client.create_cluster_role_binding.call_args[0][0]
        assert binding["subjects"][0]["name"] == "pipeline-sa"
        pod = mock_k8s_client.create_pod.call_args[0][1]
        assert pod["spec"]["serviceAccountName"] == "pipeline-sa"
        assert result.resources.service_account.owned is False


class TestFailures:
    """Errors that fail the run."""

    def test_missing_script(self, mock_k8s_client, tmp_path):
        env = make_env(ILAB_STANDALONE_SCRIPT=str(tmp_path / "missing.py"))
        result = run_workflow(environ=env, k8s=mock_k8s_client)
        assert result.status == RunStatus.FAILED
        assert "missing.py" in result.message
        _assert_nothing_created(mock_k8s_client)

    def test_invalid_config(self, mock_k8s_client, workflow_env):
        workflow_env["TEST_ILAB_NUM_GPUS"] = "none"
        result = run_workflow(environ=workflow_env, k8s=mock_k8s_client)
        assert result.status == RunStatus.FAILED
        _assert_nothing_created(mock_k8s_client)

    def test_cluster_unreachable(self, workflow_env):
        with patch(
            "ilabe2e.orchestrator.get_k8s_client",
            side_effect=K8sConnectionError("Failed to load Kubernetes config"),
        ):
            result = run_workflow(environ=workflow_env)
        assert result.status == RunStatus.FAILED
        assert "Kubernetes config" in result.message

    def test_provisioning_error_cleans_up(self, mock_k8s_client, workflow_env):
        mock_k8s_client.create_pod.side_effect = K8sResourceError("quota exceeded", 403)
        result = run_workflow(environ=workflow_env, k8s=mock_k8s_client)
        assert result.status == RunStatus.FAILED
        assert "quota exceeded" in result.message
        assert result.pod_phase is None
        mock_k8s_client.delete_cluster_role.assert_called_once()
        mock_k8s_client.delete_namespace.assert_called_once()

    @pytest.mark.parametrize(
        "error",
        [
            K8sConnectionError("Kubernetes API unreachable: connection refused"),
            urllib3.exceptions.MaxRetryError(
                None, "/api/v1/namespaces", ConnectionRefusedError("connection refused")
            ),
        ],
    )
    def test_connection_lost_while_provisioning(
        self, mock_k8s_client, workflow_env, tmp_path, error
    ):
        mock_k8s_client.create_secret.side_effect = error
        journal = Journal(tmp_path / "journal")
        result = run_workflow(environ=workflow_env, k8s=mock_k8s_client, journal=journal)

        assert result.status == RunStatus.FAILED
        assert "connection refused" in result.message
        mock_k8s_client.delete_cluster_role.assert_called_once()
        mock_k8s_client.delete_namespace.assert_called_once()
        assert journal.session_id is None
        session = journal.list_sessions()[0]
        assert session["closed"] is True
        assert session["status"] == "failed"

    def test_polling_error_fails(self, mock_k8s_client, workflow_env):
        mock_k8s_client.get_pod_phase.side_effect = K8sResourceError("gone", 404)
        result = run_workflow(environ=workflow_env, k8s=mock_k8s_client)
        assert result.status == RunStatus.FAILED
        mock_k8s_client.delete_namespace.assert_called_once()

    def test_cleanup_errors_do_not_change_status(self, mock_k8s_client, workflow_env):
        mock_k8s_client.delete_cluster_role.side_effect = K8sResourceError("forbidden", 403)
        result = run_workflow(environ=workflow_env, k8s=mock_k8s_client)
        assert result.status == RunStatus.SUCCEEDED
        assert len(result.cleanup_errors) == 1
        assert "ClusterRole" in result.cleanup_errors[0].description
        mock_k8s_client.delete_namespace.assert_called_once()


class TestCancellation:
    """External cancellation."""

    def test_cancel_before_start(self, mock_k8s_client, workflow_env):
        cancel = threading.Event()
        cancel.set()
        result = run_workflow(environ=workflow_env, k8s=mock_k8s_client, cancel=cancel)
        assert result.status == RunStatus.CANCELLED
        _assert_nothing_created(mock_k8s_client)

    def test_cancel_during_wait_cleans_up(self, mock_k8s_client, script_file):
        cancel = threading.Event()

        def phase(name, namespace):
            cancel.set()
            return PodPhase.RUNNING

        mock_k8s_client.get_pod_phase.side_effect = phase
        cfg = make_config(ILAB_STANDALONE_SCRIPT=str(script_file))
        result = run_workflow(k8s=mock_k8s_client, cancel=cancel, config=cfg)
        assert result.status == RunStatus.CANCELLED
        mock_k8s_client.delete_namespace.assert_called_once()


class TestJournaling:
    """Provenance events recorded by a run."""

    @pytest.fixture
    def journal(self, tmp_path) -> Journal:
        return Journal(tmp_path / "journal")

    def _event_types(self, journal: Journal) -> list[str]:
        session = journal.list_sessions()[0]
        return [e["event_type"] for e in journal.load_session_events(session["session_id"])]

    def test_session_opened_and_closed(self, mock_k8s_client, workflow_env, journal):
        run_workflow(environ=workflow_env, k8s=mock_k8s_client, journal=journal)
        types = self._event_types(journal)
        assert types[0] == EventType.SESSION_START.value
        assert types[1] == EventType.RUN_START.value
        assert types[2] == EventType.CONFIG_RESOLVED.value
        assert types[-2] == EventType.RUN_END.value
        assert types[-1] == EventType.SESSION_END.value
        assert journal.session_id is None

    def test_resource_events(self, mock_k8s_client, workflow_env, journal):
        run_workflow(environ=workflow_env, k8s=mock_k8s_client, journal=journal)
        types = self._event_types(journal)
        assert types.count(EventType.RESOURCE_CREATED.value) == 9
        assert types.count(EventType.RESOURCE_DELETED.value) == 9
        assert EventType.POD_PHASE.value in types

    def test_cleanup_failure_event(self, mock_k8s_client, workflow_env, journal):
        mock_k8s_client.delete_pod.side_effect = K8sResourceError("boom", 500)
        run_workflow(environ=workflow_env, k8s=mock_k8s_client, journal=journal)
        assert EventType.RESOURCE_CLEANUP_FAILED.value in self._event_types(journal)

    def test_status_in_session_summary(self, mock_k8s_client, workflow_env, journal):
        mock_k8s_client.get_pod_phase.return_value = PodPhase.FAILED
        run_workflow(environ=workflow_env, k8s=mock_k8s_client, journal=journal)
        assert journal.list_sessions()[0]["status"] == "failed"

    def test_secrets_not_journaled(self, mock_k8s_client, workflow_env, journal):
        run_workflow(environ=workflow_env, k8s=mock_k8s_client, journal=journal)
        text = journal.list_sessions()[0]["path"]
        with open(text) as f:
            content = f.read()
        assert "judge-token" not in content
        assert "sdg-token" not in content

    def test_skipped_run_is_journaled(self, mock_k8s_client, journal):
        run_workflow(environ={}, k8s=mock_k8s_client, journal=journal)
        assert journal.list_sessions()[0]["status"] == "skipped"
