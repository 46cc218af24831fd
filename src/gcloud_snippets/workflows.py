"""Workflows: deploy a definition, execute it and clean it up.

A freshly created workflow is only usable once its state is ``ACTIVE``;
``deploy_workflow`` polls for that at a fixed interval.  Executions are
polled with exponential backoff until they leave the ``ACTIVE`` state.
"""

from __future__ import annotations

import functools
import json
import logging
from typing import Any, TextIO

from google.cloud import workflows_v1
from google.cloud.workflows import executions_v1

from gcloud_snippets.errors import call_site
from gcloud_snippets.polling import poll, run_with_timeout, wait_for_state
from gcloud_snippets.resources import ExecutionInfo

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600.0
DEPLOY_TIMEOUT = 300.0
MAX_BACKOFF = 60.0


def wait_for_workflow_active(
    client: workflows_v1.WorkflowsClient,
    name: str,
    *,
    timeout: float = DEPLOY_TIMEOUT,
    interval: float = 1.0,
) -> None:
    """Block until the workflow *name* reports the ``ACTIVE`` state.

    Raises:
        DeadlineExceeded: If the workflow is not active within *timeout*.
    """

    def fetch_state() -> str:
        with call_site("workflows.WorkflowsClient.get_workflow"):
            return client.get_workflow(name=name).state.name

    wait_for_state(fetch_state, "ACTIVE", timeout=timeout, interval=interval)
    logger.info("Workflow %s is active", name)


def deploy_workflow(
    project_id: str,
    location: str,
    workflow_id: str,
    source_contents: str,
    *,
    timeout: float = DEPLOY_TIMEOUT,
    interval: float = 1.0,
) -> str:
    """Create a workflow from YAML/JSON source and wait until it is active.

    Args:
        project_id: GCP project ID.
        location: Workflows location, e.g. ``us-central1``.
        workflow_id: Workflow ID, unique in the location.
        source_contents: Workflow definition.
        timeout: Seconds to wait for creation and activation, each.
        interval: Seconds between state checks.

    Returns:
        The workflow's full resource name.
    """
    with call_site("workflows.WorkflowsClient"):
        client = workflows_v1.WorkflowsClient()

    parent = client.common_location_path(project_id, location)
    name = client.workflow_path(project_id, location, workflow_id)
    workflow = workflows_v1.Workflow(name=name, source_contents=source_contents)

    logger.info("Creating workflow %s", name)
    with call_site("workflows.WorkflowsClient.create_workflow"):
        operation = client.create_workflow(parent=parent, workflow=workflow, workflow_id=workflow_id)
        operation.result(timeout=timeout)

    wait_for_workflow_active(client, name, timeout=timeout, interval=interval)
    return name


def delete_workflow(
    project_id: str,
    location: str,
    workflow_id: str,
    *,
    timeout: float = DEPLOY_TIMEOUT,
) -> None:
    """Delete a workflow and wait for the deletion to finish."""
    with call_site("workflows.WorkflowsClient"):
        client = workflows_v1.WorkflowsClient()

    name = client.workflow_path(project_id, location, workflow_id)
    logger.info("Deleting workflow %s", name)
    with call_site("workflows.WorkflowsClient.delete_workflow"):
        client.delete_workflow(name=name).result(timeout=timeout)


def execute_workflow(
    out: TextIO,
    project_id: str,
    workflow_id: str,
    location: str,
    *,
    arguments: dict[str, Any] | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    interval: float = 1.0,
    max_interval: float = MAX_BACKOFF,
) -> ExecutionInfo:
    """Execute a workflow and print its result.

    Args:
        out: Sink for progress and results.
        project_id: GCP project ID.
        workflow_id: Workflow to run.
        location: Workflows location.
        arguments: Optional runtime arguments, sent JSON-encoded.
        timeout: Seconds to wait for the execution to finish.
        interval: First delay between status checks, doubled each time.
        max_interval: Upper bound for the delay.

    Returns:
        The finished execution.

    Raises:
        DeadlineExceeded: If the execution is still active after *timeout*.
    """
    with call_site("workflows.ExecutionsClient"):
        client = executions_v1.ExecutionsClient()

    parent = client.workflow_path(project_id, location, workflow_id)
    execution = executions_v1.Execution()
    if arguments is not None:
        execution.argument = json.dumps(arguments)

    with call_site("workflows.ExecutionsClient.create_execution"):
        response = client.create_execution(parent=parent, execution=execution)
    print(f"Created execution: {response.name}", file=out)

    def fetch() -> executions_v1.Execution:
        with call_site("workflows.ExecutionsClient.get_execution"):
            return client.get_execution(name=response.name)

    finished = poll(
        fetch,
        lambda e: e.state != executions_v1.Execution.State.ACTIVE,
        timeout=timeout,
        interval=interval,
        multiplier=2.0,
        max_interval=max_interval,
    )

    info = ExecutionInfo(
        name=finished.name,
        state=finished.state.name,
        result=finished.result,
        error=finished.error.payload if finished.error else "",
    )
    if info.state != "SUCCEEDED":
        logger.warning("Execution %s finished with state %s: %s", info.name, info.state, info.error)

    print(f"Execution finished with state: {info.state}", file=out)
    print(f"Execution results: {info.result}", file=out)
    return info


def execute_workflow_with_timeout(
    out: TextIO,
    project_id: str,
    workflow_id: str,
    location: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    arguments: dict[str, Any] | None = None,
    interval: float = 1.0,
) -> ExecutionInfo:
    """Run ``execute_workflow`` in a worker thread bounded by *timeout*.

    When the deadline passes first the execution keeps being polled in
    the background; only the caller stops waiting.

    Raises:
        DeadlineExceeded: If the execution has not finished in time.
    """
    run = functools.partial(
        execute_workflow,
        out,
        project_id,
        workflow_id,
        location,
        arguments=arguments,
        timeout=timeout,
        interval=interval,
    )
    return run_with_timeout(run, timeout=timeout)
