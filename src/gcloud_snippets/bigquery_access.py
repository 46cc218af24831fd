"""BigQuery access control: dataset access entries and table/view IAM policies.

Datasets carry an access list of ``AccessEntry`` objects that is updated
with the dataset's ETag, so a concurrent modification makes the update
fail instead of silently overwriting it.  Tables and views use IAM
policies (role -> members bindings) through ``get_iam_policy`` /
``set_iam_policy``.

Every operation writes a human-readable summary to *out*.
"""

from __future__ import annotations

import logging
from typing import Any, TextIO

from google.cloud import bigquery

from gcloud_snippets.errors import call_site
from gcloud_snippets.resources import AccessEntryInfo, PolicyBinding

logger = logging.getLogger(__name__)

# Find more details about BigQuery entity types and dataset roles here:
# https://cloud.google.com/python/docs/reference/bigquery/latest/google.cloud.bigquery.dataset.AccessEntry
ANALYST_GROUP = "example-analyst-group@google.com"
DATASET_READER = "READER"
GROUP_BY_EMAIL = "groupByEmail"

TABLE_VIEWER = "roles/bigquery.dataViewer"
ANALYST_PRINCIPAL = f"group:{ANALYST_GROUP}"


def _client(project_id: str) -> bigquery.Client:
    with call_site("bigquery.Client"):
        return bigquery.Client(project=project_id)


def _print_dataset_access(out: TextIO, dataset_id: str, entries: list[Any]) -> list[AccessEntryInfo]:
    print(f"Details for Access entries in dataset {dataset_id}.", file=out)
    infos = [AccessEntryInfo.from_entry(entry) for entry in entries]
    for info in infos:
        print(f"Role {info.role} : {info.entity_id}", file=out)
    return infos


def _print_policy(out: TextIO, resource_name: str, policy: Any) -> list[PolicyBinding]:
    print(f"Details for Access entries in table or view {resource_name}.", file=out)
    bindings = [PolicyBinding.from_binding(b) for b in policy.bindings]
    for binding in bindings:
        print(f"Role: {binding.role}, Principals: {', '.join(binding.members)}", file=out)
    return bindings


def grant_access_to_dataset(
    out: TextIO,
    project_id: str,
    dataset_id: str,
    *,
    entity_type: str = GROUP_BY_EMAIL,
    entity_id: str = ANALYST_GROUP,
    role: str = DATASET_READER,
) -> list[AccessEntryInfo]:
    """Append an access entry to a dataset's access list.

    Args:
        out: Sink for the confirmation text.
        project_id: GCP project ID.
        dataset_id: BigQuery dataset ID.
        entity_type: Access entry entity type, e.g. ``groupByEmail``,
            ``userByEmail`` or ``domain``.
        entity_id: Entity the role is granted to.
        role: Basic dataset role (``READER``, ``WRITER``, ``OWNER``).

    Returns:
        The dataset's access entries after the update.

    Raises:
        SnippetError: If reading or updating the dataset fails, including
            when the dataset changed since it was read.
    """
    client = _client(project_id)
    try:
        with call_site("bigquery.Client.get_dataset"):
            dataset = client.get_dataset(f"{project_id}.{dataset_id}")

        entries = list(dataset.access_entries)
        entries.append(
            bigquery.AccessEntry(role=role, entity_type=entity_type, entity_id=entity_id)
        )
        dataset.access_entries = entries

        logger.info("Granting %s on %s to %s %s", role, dataset_id, entity_type, entity_id)
        # update_dataset sends the ETag read above as If-Match.
        with call_site("bigquery.Client.update_dataset"):
            dataset = client.update_dataset(dataset, ["access_entries"])
    finally:
        client.close()

    return _print_dataset_access(out, dataset_id, list(dataset.access_entries))


def revoke_dataset_access(
    out: TextIO,
    project_id: str,
    dataset_id: str,
    entity_id: str = ANALYST_GROUP,
) -> list[AccessEntryInfo]:
    """Remove every access entry for *entity_id* from a dataset.

    The dataset is left untouched when no entry matches.

    Returns:
        The dataset's access entries after the update.
    """
    client = _client(project_id)
    try:
        with call_site("bigquery.Client.get_dataset"):
            dataset = client.get_dataset(f"{project_id}.{dataset_id}")

        entries = list(dataset.access_entries)
        kept = [entry for entry in entries if entry.entity_id != entity_id]
        if len(kept) == len(entries):
            logger.warning("No access entry for %s in dataset %s", entity_id, dataset_id)
        else:
            dataset.access_entries = kept
            logger.info("Revoking %d entr(ies) for %s", len(entries) - len(kept), entity_id)
            with call_site("bigquery.Client.update_dataset"):
                dataset = client.update_dataset(dataset, ["access_entries"])
    finally:
        client.close()

    return _print_dataset_access(out, dataset_id, list(dataset.access_entries))


def view_dataset_access_policies(out: TextIO, project_id: str, dataset_id: str) -> list[AccessEntryInfo]:
    """Print a dataset's access entries."""
    client = _client(project_id)
    try:
        with call_site("bigquery.Client.get_dataset"):
            dataset = client.get_dataset(f"{project_id}.{dataset_id}")
    finally:
        client.close()

    return _print_dataset_access(out, dataset_id, list(dataset.access_entries))


def grant_access_to_table_or_view(
    out: TextIO,
    project_id: str,
    dataset_id: str,
    resource_name: str,
    *,
    role: str = TABLE_VIEWER,
    principal: str = ANALYST_PRINCIPAL,
) -> list[PolicyBinding]:
    """Add *principal* to the *role* binding of a table or view IAM policy.

    Conditional bindings for *role* are left alone; a new unconditional
    binding is added when none exists.

    Args:
        out: Sink for the confirmation text.
        project_id: GCP project ID.
        dataset_id: BigQuery dataset ID.
        resource_name: Table or view ID.
        role: IAM role, e.g. ``roles/bigquery.dataViewer``.
        principal: IAM principal, e.g. ``group:analysts@example.com``.

    Returns:
        The policy bindings after the update.
    """
    resource = f"{project_id}.{dataset_id}.{resource_name}"
    client = _client(project_id)
    try:
        with call_site("bigquery.Client.get_iam_policy"):
            policy = client.get_iam_policy(resource)

        for binding in policy.bindings:
            # A conditional binding would only grant the role under its condition.
            if binding["role"] == role and not binding.get("condition"):
                binding["members"] = set(binding["members"]) | {principal}
                break
        else:
            policy.bindings.append({"role": role, "members": {principal}})

        logger.info("Granting %s on %s to %s", role, resource, principal)
        with call_site("bigquery.Client.set_iam_policy"):
            policy = client.set_iam_policy(resource, policy)
    finally:
        client.close()

    return _print_policy(out, resource_name, policy)


def revoke_table_or_view_access_policies(
    out: TextIO,
    project_id: str,
    dataset_id: str,
    resource_name: str,
    *,
    role: str | None = None,
    principal: str | None = ANALYST_PRINCIPAL,
) -> list[PolicyBinding]:
    """Revoke access from a table or view IAM policy.

    With only *role*, the whole binding for that role is dropped.  With
    only *principal*, the principal is removed from every binding.  With
    both, the principal is removed from that role's binding only.
    Bindings left without members are dropped.

    Returns:
        The policy bindings after the update.

    Raises:
        ValueError: If neither *role* nor *principal* is given.
    """
    if role is None and principal is None:
        raise ValueError("role or principal is required to revoke access")

    resource = f"{project_id}.{dataset_id}.{resource_name}"
    client = _client(project_id)
    try:
        with call_site("bigquery.Client.get_iam_policy"):
            policy = client.get_iam_policy(resource)

        bindings = []
        for binding in policy.bindings:
            members = set(binding["members"])
            if role is None or binding["role"] == role:
                if principal is None:
                    continue
                members.discard(principal)
            if members:
                bindings.append({**binding, "members": members})
        policy.bindings = bindings

        logger.info("Revoking %s from %s", principal or role, resource)
        with call_site("bigquery.Client.set_iam_policy"):
            policy = client.set_iam_policy(resource, policy)
    finally:
        client.close()

    return _print_policy(out, resource_name, policy)


def view_table_or_view_access_policies(
    out: TextIO,
    project_id: str,
    dataset_id: str,
    resource_name: str,
) -> list[PolicyBinding]:
    """Print the IAM policy bindings of a table or view."""
    client = _client(project_id)
    try:
        with call_site("bigquery.Client.get_iam_policy"):
            policy = client.get_iam_policy(f"{project_id}.{dataset_id}.{resource_name}")
    finally:
        client.close()

    return _print_policy(out, resource_name, policy)
