"""CLI entrypoint for gcloud-snippets."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from google.api_core.exceptions import GoogleAPIError

from gcloud_snippets import bigquery_access, compute_disks, workflows
from gcloud_snippets.config import SnippetConfig, discover_config, load_config
from gcloud_snippets.errors import SnippetError


def _positive_float(value: str) -> float:
    """``argparse`` type for strictly positive seconds."""
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: '{value}'") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return number


def _common_parser() -> argparse.ArgumentParser:
    """Options shared by every subcommand."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to gcloud_snippets.toml (default: auto-discover from CWD).",
    )
    common.add_argument(
        "--project",
        type=str,
        default=None,
        help="GCP project ID (default: [project].id from config).",
    )
    return common


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        prog="gcloud-snippets",
        description="Run Google Cloud BigQuery, Compute and Workflows snippets.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    common = _common_parser()

    # --- BigQuery datasets ---
    grant_ds = subparsers.add_parser(
        "grant-dataset-access", parents=[common], help="Add an access entry to a dataset."
    )
    grant_ds.add_argument("dataset", type=str, help="BigQuery dataset ID.")
    grant_ds.add_argument("--entity-type", default=bigquery_access.GROUP_BY_EMAIL)
    grant_ds.add_argument("--entity-id", default=bigquery_access.ANALYST_GROUP)
    grant_ds.add_argument("--role", default=bigquery_access.DATASET_READER)

    revoke_ds = subparsers.add_parser(
        "revoke-dataset-access", parents=[common], help="Remove an entity from a dataset."
    )
    revoke_ds.add_argument("dataset", type=str, help="BigQuery dataset ID.")
    revoke_ds.add_argument("--entity-id", default=bigquery_access.ANALYST_GROUP)

    view_ds = subparsers.add_parser(
        "view-dataset-access", parents=[common], help="Print a dataset's access entries."
    )
    view_ds.add_argument("dataset", type=str, help="BigQuery dataset ID.")

    # --- BigQuery tables and views ---
    grant_tbl = subparsers.add_parser(
        "grant-table-access", parents=[common], help="Grant a role on a table or view."
    )
    grant_tbl.add_argument("dataset", type=str, help="BigQuery dataset ID.")
    grant_tbl.add_argument("resource", type=str, help="Table or view ID.")
    grant_tbl.add_argument("--role", default=bigquery_access.TABLE_VIEWER)
    grant_tbl.add_argument("--principal", default=bigquery_access.ANALYST_PRINCIPAL)

    revoke_tbl = subparsers.add_parser(
        "revoke-table-access", parents=[common], help="Revoke access to a table or view."
    )
    revoke_tbl.add_argument("dataset", type=str, help="BigQuery dataset ID.")
    revoke_tbl.add_argument("resource", type=str, help="Table or view ID.")
    revoke_tbl.add_argument("--role", default=None, help="Drop the binding for this role.")
    revoke_tbl.add_argument(
        "--principal",
        default=None,
        help=f"Remove this principal (default: {bigquery_access.ANALYST_PRINCIPAL} "
        "when --role is not given).",
    )

    view_tbl = subparsers.add_parser(
        "view-table-access", parents=[common], help="Print a table or view IAM policy."
    )
    view_tbl.add_argument("dataset", type=str, help="BigQuery dataset ID.")
    view_tbl.add_argument("resource", type=str, help="Table or view ID.")

    # --- Compute disks ---
    list_cg = subparsers.add_parser(
        "list-consistency-group",
        parents=[common],
        help="List regional disks in a consistency group.",
    )
    list_cg.add_argument("group", type=str, help="Consistency group name.")
    list_cg.add_argument("--region", default=None, help="Region (default: config).")

    start_rep = subparsers.add_parser(
        "start-replication", parents=[common], help="Start async disk replication."
    )
    start_rep.add_argument("disk", type=str, help="Secondary disk name.")
    start_rep.add_argument("primary_disk", type=str, help="Primary disk name.")
    start_rep.add_argument("--zone", default=None, help="Secondary zone (default: config).")
    start_rep.add_argument("--primary-zone", required=True, help="Primary disk zone.")

    stop_rep = subparsers.add_parser(
        "stop-replication", parents=[common], help="Stop async disk replication."
    )
    stop_rep.add_argument("disk", type=str, help="Primary disk name.")
    stop_rep.add_argument("--zone", default=None, help="Disk zone (default: config).")

    # --- Workflows ---
    deploy = subparsers.add_parser(
        "deploy-workflow", parents=[common], help="Create a workflow and wait until active."
    )
    deploy.add_argument("workflow", type=str, help="Workflow ID.")
    deploy.add_argument("source", type=str, help="Path to the workflow YAML/JSON definition.")
    deploy.add_argument("--location", default=None, help="Location (default: config).")

    execute = subparsers.add_parser(
        "execute-workflow", parents=[common], help="Execute a workflow and print its result."
    )
    execute.add_argument("workflow", type=str, help="Workflow ID.")
    execute.add_argument("--location", default=None, help="Location (default: config).")
    execute.add_argument(
        "--arguments", default=None, help="JSON object passed to the execution."
    )
    execute.add_argument(
        "--timeout", type=_positive_float, default=None, help="Seconds to wait (default: config)."
    )

    delete = subparsers.add_parser(
        "delete-workflow", parents=[common], help="Delete a workflow."
    )
    delete.add_argument("workflow", type=str, help="Workflow ID.")
    delete.add_argument("--location", default=None, help="Location (default: config).")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint.

    Args:
        argv: Command-line arguments.  Defaults to ``sys.argv[1:]``.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )

    handler = _HANDLERS[args.command]
    try:
        handler(args, _resolve_config(args))
    except (SnippetError, GoogleAPIError) as exc:
        logging.error("%s", exc)
        sys.exit(1)


def _resolve_config(args: argparse.Namespace) -> SnippetConfig | None:
    """Load config from ``--config`` or discovery.

    A missing auto-discovered config is not an error: every value can
    come from flags instead.
    """
    if args.config:
        return load_config(Path(args.config).resolve())
    try:
        return load_config(discover_config())
    except FileNotFoundError:
        logging.debug("No config file found, relying on command-line flags")
        return None


def _require(value: str | None, flag: str) -> str:
    if value is None:
        logging.error("%s is required (no config file provides it)", flag)
        sys.exit(1)
    return value


def _project(args: argparse.Namespace, config: SnippetConfig | None) -> str:
    return _require(args.project or (config.project.id if config else None), "--project")


def _region(args: argparse.Namespace, config: SnippetConfig | None) -> str:
    return _require(args.region or (config.project.default_region if config else None), "--region")


def _zone(args: argparse.Namespace, config: SnippetConfig | None) -> str:
    return _require(args.zone or (config.project.default_zone if config else None), "--zone")


def _location(args: argparse.Namespace, config: SnippetConfig | None) -> str:
    return _require(args.location or (config.workflow_location if config else None), "--location")


def _handle_grant_dataset(args: argparse.Namespace, config: SnippetConfig | None) -> None:
    """Handle the ``grant-dataset-access`` subcommand."""
    bigquery_access.grant_access_to_dataset(
        sys.stdout,
        _project(args, config),
        args.dataset,
        entity_type=args.entity_type,
        entity_id=args.entity_id,
        role=args.role,
    )


def _handle_revoke_dataset(args: argparse.Namespace, config: SnippetConfig | None) -> None:
    """Handle the ``revoke-dataset-access`` subcommand."""
    bigquery_access.revoke_dataset_access(
        sys.stdout, _project(args, config), args.dataset, args.entity_id
    )


def _handle_view_dataset(args: argparse.Namespace, config: SnippetConfig | None) -> None:
    """Handle the ``view-dataset-access`` subcommand."""
    bigquery_access.view_dataset_access_policies(sys.stdout, _project(args, config), args.dataset)


def _handle_grant_table(args: argparse.Namespace, config: SnippetConfig | None) -> None:
    """Handle the ``grant-table-access`` subcommand."""
    bigquery_access.grant_access_to_table_or_view(
        sys.stdout,
        _project(args, config),
        args.dataset,
        args.resource,
        role=args.role,
        principal=args.principal,
    )


def _handle_revoke_table(args: argparse.Namespace, config: SnippetConfig | None) -> None:
    """Handle the ``revoke-table-access`` subcommand."""
    principal = args.principal
    if principal is None and args.role is None:
        principal = bigquery_access.ANALYST_PRINCIPAL
    bigquery_access.revoke_table_or_view_access_policies(
        sys.stdout,
        _project(args, config),
        args.dataset,
        args.resource,
        role=args.role,
        principal=principal,
    )


def _handle_view_table(args: argparse.Namespace, config: SnippetConfig | None) -> None:
    """Handle the ``view-table-access`` subcommand."""
    bigquery_access.view_table_or_view_access_policies(
        sys.stdout, _project(args, config), args.dataset, args.resource
    )


def _handle_list_consistency_group(args: argparse.Namespace, config: SnippetConfig | None) -> None:
    """Handle the ``list-consistency-group`` subcommand."""
    compute_disks.list_consistency_group(
        sys.stdout, _project(args, config), _region(args, config), args.group
    )


def _handle_start_replication(args: argparse.Namespace, config: SnippetConfig | None) -> None:
    """Handle the ``start-replication`` subcommand."""
    compute_disks.start_replication(
        sys.stdout,
        _project(args, config),
        _zone(args, config),
        args.disk,
        args.primary_disk,
        args.primary_zone,
    )


def _handle_stop_replication(args: argparse.Namespace, config: SnippetConfig | None) -> None:
    """Handle the ``stop-replication`` subcommand."""
    compute_disks.stop_replication(
        sys.stdout, _project(args, config), _zone(args, config), args.disk
    )


def _handle_deploy_workflow(args: argparse.Namespace, config: SnippetConfig | None) -> None:
    """Handle the ``deploy-workflow`` subcommand."""
    try:
        source = Path(args.source).read_text(encoding="utf-8")
    except OSError as exc:
        logging.error("Cannot read workflow source '%s': %s", args.source, exc)
        sys.exit(1)
    interval = config.workflows.poll_interval if config else 1.0
    name = workflows.deploy_workflow(
        _project(args, config),
        _location(args, config),
        args.workflow,
        source,
        interval=interval,
    )
    print(f"Workflow {name} is active", file=sys.stdout)


def _handle_execute_workflow(args: argparse.Namespace, config: SnippetConfig | None) -> None:
    """Handle the ``execute-workflow`` subcommand."""
    try:
        arguments = json.loads(args.arguments) if args.arguments else None
    except json.JSONDecodeError as exc:
        logging.error("--arguments is not valid JSON: %s", exc)
        sys.exit(1)
    if arguments is not None and not isinstance(arguments, dict):
        logging.error("--arguments must be a JSON object, got %s", type(arguments).__name__)
        sys.exit(1)

    if args.timeout is not None:
        timeout = args.timeout
    else:
        timeout = config.workflows.timeout if config else workflows.DEFAULT_TIMEOUT
    interval = config.workflows.poll_interval if config else 1.0
    workflows.execute_workflow_with_timeout(
        sys.stdout,
        _project(args, config),
        args.workflow,
        _location(args, config),
        timeout=timeout,
        arguments=arguments,
        interval=interval,
    )


def _handle_delete_workflow(args: argparse.Namespace, config: SnippetConfig | None) -> None:
    """Handle the ``delete-workflow`` subcommand."""
    workflows.delete_workflow(_project(args, config), _location(args, config), args.workflow)
    print(f"Workflow {args.workflow} deleted", file=sys.stdout)


_HANDLERS = {
    "grant-dataset-access": _handle_grant_dataset,
    "revoke-dataset-access": _handle_revoke_dataset,
    "view-dataset-access": _handle_view_dataset,
    "grant-table-access": _handle_grant_table,
    "revoke-table-access": _handle_revoke_table,
    "view-table-access": _handle_view_table,
    "list-consistency-group": _handle_list_consistency_group,
    "start-replication": _handle_start_replication,
    "stop-replication": _handle_stop_replication,
    "deploy-workflow": _handle_deploy_workflow,
    "execute-workflow": _handle_execute_workflow,
    "delete-workflow": _handle_delete_workflow,
}
