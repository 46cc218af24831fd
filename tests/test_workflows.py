"""Tests for ``gcloud_snippets.workflows``."""

from __future__ import annotations

import io
import json
from unittest.mock import MagicMock, patch

import pytest
from google.api_core.exceptions import DeadlineExceeded, NotFound
from google.cloud import workflows_v1
from google.cloud.workflows import executions_v1

from gcloud_snippets.errors import SnippetError
from gcloud_snippets.workflows import (
    delete_workflow,
    deploy_workflow,
    execute_workflow,
    execute_workflow_with_timeout,
    wait_for_workflow_active,
)

State = executions_v1.Execution.State
EXECUTION_NAME = "projects/proj/locations/us-central1/workflows/wf/executions/e1"


def _execution(state: State, result: str = "") -> executions_v1.Execution:
    return executions_v1.Execution(name=EXECUTION_NAME, state=state, result=result)


def _workflow(state: workflows_v1.Workflow.State) -> workflows_v1.Workflow:
    return workflows_v1.Workflow(state=state)


def _setup_executions(mock_client_cls: MagicMock, states: list[executions_v1.Execution]) -> MagicMock:
    client = mock_client_cls.return_value
    client.workflow_path.return_value = "projects/proj/locations/us-central1/workflows/wf"
    created = MagicMock()
    created.name = EXECUTION_NAME
    client.create_execution.return_value = created
    client.get_execution.side_effect = states
    return client


class TestExecuteWorkflow:
    """Tests for ``execute_workflow``."""

    @patch("gcloud_snippets.workflows.executions_v1.ExecutionsClient")
    def test_polls_until_finished(self, mock_client_cls: MagicMock) -> None:
        """Output contains the execution results once it leaves ACTIVE."""
        client = _setup_executions(
            mock_client_cls,
            [_execution(State.ACTIVE), _execution(State.ACTIVE), _execution(State.SUCCEEDED, '"Hello"')],
        )

        out = io.StringIO()
        info = execute_workflow(out, "proj", "wf", "us-central1", interval=0.01)

        client.workflow_path.assert_called_once_with("proj", "us-central1", "wf")
        assert client.get_execution.call_count == 3
        assert info.state == "SUCCEEDED"
        assert info.result == '"Hello"'
        assert "Execution results" in out.getvalue()
        assert out.getvalue() == (
            f"Created execution: {EXECUTION_NAME}\n"
            "Execution finished with state: SUCCEEDED\n"
            'Execution results: "Hello"\n'
        )

    @patch("gcloud_snippets.workflows.executions_v1.ExecutionsClient")
    def test_arguments_json_encoded(self, mock_client_cls: MagicMock) -> None:
        """Arguments are sent as a JSON string."""
        client = _setup_executions(mock_client_cls, [_execution(State.SUCCEEDED)])

        execute_workflow(
            io.StringIO(), "proj", "wf", "us-central1", arguments={"searchTerm": "Cloud"}
        )

        execution = client.create_execution.call_args.kwargs["execution"]
        assert json.loads(execution.argument) == {"searchTerm": "Cloud"}

    @patch("gcloud_snippets.workflows.executions_v1.ExecutionsClient")
    def test_failed_execution_reported(self, mock_client_cls: MagicMock) -> None:
        """A failed execution still prints its state and results line."""
        failed = _execution(State.FAILED)
        failed.error = executions_v1.Execution.Error(payload="division by zero")
        _setup_executions(mock_client_cls, [failed])

        out = io.StringIO()
        info = execute_workflow(out, "proj", "wf", "us-central1")

        assert info.state == "FAILED"
        assert info.error == "division by zero"
        assert "Execution finished with state: FAILED" in out.getvalue()

    @patch("gcloud_snippets.workflows.executions_v1.ExecutionsClient")
    def test_still_active_at_deadline(self, mock_client_cls: MagicMock) -> None:
        """Raise ``DeadlineExceeded`` when the execution never finishes."""
        client = _setup_executions(mock_client_cls, [])
        client.get_execution.side_effect = None
        client.get_execution.return_value = _execution(State.ACTIVE)

        with pytest.raises(DeadlineExceeded):
            execute_workflow(io.StringIO(), "proj", "wf", "us-central1", timeout=0.05, interval=0.01)

    @patch("gcloud_snippets.workflows.executions_v1.ExecutionsClient")
    def test_missing_workflow(self, mock_client_cls: MagicMock) -> None:
        """A missing workflow fails at execution creation."""
        client = _setup_executions(mock_client_cls, [])
        client.create_execution.side_effect = NotFound("workflow wf")

        with pytest.raises(SnippetError) as info:
            execute_workflow(io.StringIO(), "proj", "wf", "us-central1")

        assert info.value.call_site == "workflows.ExecutionsClient.create_execution"


class TestExecuteWorkflowWithTimeout:
    """Tests for ``execute_workflow_with_timeout``."""

    @patch("gcloud_snippets.workflows.executions_v1.ExecutionsClient")
    def test_finishes_before_deadline(self, mock_client_cls: MagicMock) -> None:
        """The result is returned when the execution beats the deadline."""
        _setup_executions(mock_client_cls, [_execution(State.SUCCEEDED, "42")])

        out = io.StringIO()
        info = execute_workflow_with_timeout(out, "proj", "wf", "us-central1", timeout=5)

        assert info.result == "42"
        assert "Execution results" in out.getvalue()

    @patch("gcloud_snippets.workflows.executions_v1.ExecutionsClient")
    def test_error_surfaced(self, mock_client_cls: MagicMock) -> None:
        """An error raised before the deadline is passed through."""
        client = _setup_executions(mock_client_cls, [])
        client.create_execution.side_effect = NotFound("workflow wf")

        with pytest.raises(SnippetError):
            execute_workflow_with_timeout(io.StringIO(), "proj", "wf", "us-central1", timeout=5)

    @patch("gcloud_snippets.workflows.executions_v1.ExecutionsClient")
    def test_deadline(self, mock_client_cls: MagicMock) -> None:
        """The caller gets ``DeadlineExceeded`` when the deadline wins."""
        client = _setup_executions(mock_client_cls, [])
        client.get_execution.side_effect = None
        client.get_execution.return_value = _execution(State.ACTIVE)

        with pytest.raises(DeadlineExceeded):
            execute_workflow_with_timeout(
                io.StringIO(), "proj", "wf", "us-central1", timeout=0.1, interval=0.01
            )


class TestDeployWorkflow:
    """Tests for ``deploy_workflow`` and ``wait_for_workflow_active``."""

    @patch("gcloud_snippets.workflows.workflows_v1.WorkflowsClient")
    def test_waits_until_active(self, mock_client_cls: MagicMock) -> None:
        """Creation is followed by polling until the workflow is ACTIVE."""
        client = mock_client_cls.return_value
        client.common_location_path.return_value = "projects/proj/locations/us-central1"
        client.workflow_path.return_value = "projects/proj/locations/us-central1/workflows/wf"
        client.get_workflow.side_effect = [
            _workflow(workflows_v1.Workflow.State.STATE_UNSPECIFIED),
            _workflow(workflows_v1.Workflow.State.ACTIVE),
        ]

        name = deploy_workflow("proj", "us-central1", "wf", "main:\n  steps: []\n", interval=0.01)

        assert name == "projects/proj/locations/us-central1/workflows/wf"
        kwargs = client.create_workflow.call_args.kwargs
        assert kwargs["parent"] == "projects/proj/locations/us-central1"
        assert kwargs["workflow_id"] == "wf"
        assert kwargs["workflow"].source_contents == "main:\n  steps: []\n"
        client.create_workflow.return_value.result.assert_called_once()
        assert client.get_workflow.call_count == 2

    def test_never_active(self) -> None:
        """Raise ``DeadlineExceeded`` if the workflow stays unavailable."""
        client = MagicMock()
        client.get_workflow.return_value = _workflow(workflows_v1.Workflow.State.UNAVAILABLE)

        with pytest.raises(DeadlineExceeded):
            wait_for_workflow_active(client, "wf", timeout=0.05, interval=0.01)

    def test_get_failure_annotated(self) -> None:
        """A failing status call is annotated with its call site."""
        client = MagicMock()
        client.get_workflow.side_effect = NotFound("wf")

        with pytest.raises(SnippetError, match="^workflows.WorkflowsClient.get_workflow: "):
            wait_for_workflow_active(client, "wf", timeout=1)


class TestDeleteWorkflow:
    """Tests for ``delete_workflow``."""

    @patch("gcloud_snippets.workflows.workflows_v1.WorkflowsClient")
    def test_deletes_and_waits(self, mock_client_cls: MagicMock) -> None:
        """The deletion operation is awaited."""
        client = mock_client_cls.return_value
        client.workflow_path.return_value = "projects/proj/locations/us-central1/workflows/wf"

        delete_workflow("proj", "us-central1", "wf", timeout=30)

        client.delete_workflow.assert_called_once_with(
            name="projects/proj/locations/us-central1/workflows/wf"
        )
        client.delete_workflow.return_value.result.assert_called_once_with(timeout=30)
