"""Errors raised by snippet operations.

SDK failures are re-raised as ``SnippetError`` carrying the name of the
call that failed, so a caller sees ``"bigquery.Client.get_dataset: 404 ..."``
instead of a bare API error.  The underlying exception stays reachable
through ``__cause__``.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError


class SnippetError(RuntimeError):
    """An SDK call failed.

    Attributes:
        call_site: Name of the SDK call that raised, e.g.
            ``"compute.DisksClient.start_async_replication"``.
        cause: The underlying exception.
    """

    def __init__(self, call_site: str, cause: BaseException) -> None:
        super().__init__(f"{call_site}: {cause}")
        self.call_site = call_site
        self.cause = cause


@contextmanager
def call_site(name: str) -> Iterator[None]:
    """Annotate SDK failures raised inside the block with *name*.

    Converts Google API, auth and timeout errors into ``SnippetError``.
    Anything else propagates untouched.
    """
    try:
        yield
    except (GoogleAPIError, GoogleAuthError, TimeoutError) as exc:
        raise SnippetError(name, exc) from exc
