"""Compute Engine disk operations: consistency groups and async replication."""

from __future__ import annotations

import logging
from typing import Any, TextIO

from google.api_core.extended_operation import ExtendedOperation
from google.cloud import compute_v1

from gcloud_snippets.errors import call_site

logger = logging.getLogger(__name__)

DEFAULT_OPERATION_TIMEOUT = 300


def wait_for_extended_operation(
    operation: ExtendedOperation,
    verbose_name: str = "operation",
    timeout: float = DEFAULT_OPERATION_TIMEOUT,
) -> Any:
    """Wait for a Compute long-running operation to complete.

    Args:
        operation: The operation returned by a Compute client call.
        verbose_name: Used in error and warning messages.
        timeout: Seconds to wait before giving up.

    Returns:
        Whatever ``operation.result()`` returns.

    Raises:
        TimeoutError: If the operation takes longer than *timeout*.
        RuntimeError: If the operation finished with an ``error_code`` but
            no exception attached.
    """
    result = operation.result(timeout=timeout)

    if operation.error_code:
        logger.error(
            "Error during %s: [Code: %s]: %s (operation %s)",
            verbose_name,
            operation.error_code,
            operation.error_message,
            operation.name,
        )
        raise operation.exception() or RuntimeError(operation.error_message)

    for warning in operation.warnings or ():
        logger.warning("Warning during %s: %s: %s", verbose_name, warning.code, warning.message)

    return result


def list_consistency_group(out: TextIO, project_id: str, region: str, group_name: str) -> list[str]:
    """Print the regional disks attached to a consistency group.

    A disk belongs to the group when one of its resource policy URLs
    contains *group_name*.

    Args:
        out: Sink for the disk listing.
        project_id: GCP project ID.
        region: Region of the disks, e.g. ``europe-west4``.
        group_name: Consistency group (resource policy) name.

    Returns:
        Names of the matching disks, in listing order.
    """
    with call_site("compute.RegionDisksClient"):
        client = compute_v1.RegionDisksClient()

    matches: list[str] = []
    with call_site("compute.RegionDisksClient.list"):
        # The pager follows next_page_token on its own.
        for disk in client.list(project=project_id, region=region):
            if any(group_name in policy for policy in disk.resource_policies):
                matches.append(disk.name)
                print(f"- {disk.name}", file=out)

    logger.debug("%d disk(s) in consistency group %s", len(matches), group_name)
    return matches


def start_replication(
    out: TextIO,
    project_id: str,
    zone: str,
    disk_name: str,
    primary_disk_name: str,
    primary_zone: str,
    *,
    timeout: float = DEFAULT_OPERATION_TIMEOUT,
) -> None:
    """Start async replication from a primary disk to a secondary disk.

    Args:
        out: Sink for the confirmation text.
        project_id: GCP project ID.
        zone: Zone of the secondary disk, e.g. ``europe-west4-b``.
        disk_name: Secondary disk name.
        primary_disk_name: Primary disk name.
        primary_zone: Zone of the primary disk.
        timeout: Seconds to wait for the operation.
    """
    secondary = f"projects/{project_id}/zones/{zone}/disks/{disk_name}"

    with call_site("compute.DisksClient"):
        client = compute_v1.DisksClient()

    request = compute_v1.StartAsyncReplicationDiskRequest(
        project=project_id,
        zone=primary_zone,
        disk=primary_disk_name,
        disks_start_async_replication_request_resource=compute_v1.DisksStartAsyncReplicationRequest(
            async_secondary_disk=secondary,
        ),
    )

    logger.info("Starting replication %s -> %s", primary_disk_name, secondary)
    with call_site("compute.DisksClient.start_async_replication"):
        operation = client.start_async_replication(request=request)
    with call_site("compute.DisksClient.start_async_replication.wait"):
        wait_for_extended_operation(operation, "replication start", timeout)

    print("Replication started", file=out)


def stop_replication(
    out: TextIO,
    project_id: str,
    zone: str,
    disk_name: str,
    *,
    timeout: float = DEFAULT_OPERATION_TIMEOUT,
) -> None:
    """Stop async replication of a primary disk."""
    with call_site("compute.DisksClient"):
        client = compute_v1.DisksClient()

    logger.info("Stopping replication of %s/%s", zone, disk_name)
    with call_site("compute.DisksClient.stop_async_replication"):
        operation = client.stop_async_replication(project=project_id, zone=zone, disk=disk_name)
    with call_site("compute.DisksClient.stop_async_replication.wait"):
        wait_for_extended_operation(operation, "replication stop", timeout)

    print("Replication stopped", file=out)
