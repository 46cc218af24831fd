"""Fixtures for end-to-end tests against live Google Cloud resources.

Every test here is skipped unless ``GOOGLE_CLOUD_PROJECT`` names a project
the ambient credentials can administer.  Resources get a random prefix
and are deleted when the test finishes.
"""

from __future__ import annotations

import logging
import os
import uuid
from collections.abc import Iterator

import pytest
from google.cloud import bigquery

logger = logging.getLogger(__name__)


@pytest.fixture(scope="session")
def project_id() -> str:
    project = os.environ.get("GOOGLE_CLOUD_PROJECT")
    if not project:
        pytest.skip("GOOGLE_CLOUD_PROJECT not set")
    return project


@pytest.fixture()
def prefix() -> str:
    """Random, BigQuery- and Workflows-safe resource name prefix."""
    return f"snippets_{uuid.uuid4().hex[:12]}"


@pytest.fixture()
def bq_client(project_id: str) -> Iterator[bigquery.Client]:
    client = bigquery.Client(project=project_id)
    yield client
    client.close()


@pytest.fixture()
def dataset(bq_client: bigquery.Client, project_id: str, prefix: str) -> Iterator[str]:
    """Create a throwaway dataset and delete it with its contents afterwards."""
    dataset_id = f"{prefix}_dataset"
    bq_client.create_dataset(f"{project_id}.{dataset_id}")
    yield dataset_id
    try:
        bq_client.delete_dataset(f"{project_id}.{dataset_id}", delete_contents=True, not_found_ok=True)
    except Exception:
        logger.warning("Failed to delete dataset %s", dataset_id, exc_info=True)
