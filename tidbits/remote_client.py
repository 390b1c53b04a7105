"""
HTTP client for the remote entry service.

Implements the same capability set as the local EntryStore so the
service can use either as its backend. Responses are classified, not
retried:

- 2xx: success
- 4xx: ClientError (the request itself is wrong)
- 5xx, timeouts, connection failures: ServerError (eligible for the
  sync queue)
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .errors import ClientError, ServerError
from .types import (
    Entry,
    ListResult,
    NewEntry,
    QueryFilter,
    SearchResult,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

ENTRIES_PATH = "/entries"

# Page size for exact-key lookups served by the search endpoint
_LIST_PAGE_LIMIT = 100


def _is_client_error(status_code: int) -> bool:
    return 400 <= status_code < 500


def _is_server_error(status_code: int) -> bool:
    return 500 <= status_code < 600


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


class EntryClient:
    """HTTP client for the remote entry service."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            base_url: Service root, e.g. ``http://localhost:8080``
            timeout: Default per-request timeout in seconds (5s if unset)
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout if timeout and timeout > 0 else DEFAULT_TIMEOUT
        self._client = httpx.Client(
            base_url=self._base_url,
            headers={"Content-Type": "application/json"},
            timeout=self._timeout,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def _request(
        self,
        method: str,
        path: str,
        action: str,
        *,
        timeout: Optional[float] = None,
        allow_not_found: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and classify the outcome.

        Transport failures and 5xx become ServerError, 4xx ClientError.
        A 404 is handed back untouched when ``allow_not_found`` is set.
        """
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise ServerError(f"unable to {action}: request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ServerError(f"unable to {action}: {e}") from e

        if allow_not_found and resp.status_code == 404:
            return resp
        if _is_server_error(resp.status_code):
            raise ServerError(
                f"server failed to {action}: {resp.text}",
                status_code=resp.status_code,
            )
        if _is_client_error(resp.status_code):
            raise ClientError(
                f"invalid request to {action}: {resp.text}",
                status_code=resp.status_code,
            )
        if not _is_success(resp.status_code):
            raise ServerError(
                f"unexpected response to {action}: {resp.status_code}",
                status_code=resp.status_code,
            )
        return resp

    @staticmethod
    def _json(resp: httpx.Response, action: str) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise ServerError(f"unable to decode response to {action}: {e}") from e

    def create(self, entry: NewEntry | Entry, *, timeout: Optional[float] = None) -> str:
        """POST /entries -> id of the new entry."""
        if isinstance(entry, Entry):
            payload = entry.to_dict()
            payload.pop("id", None)
        else:
            payload = entry.to_dict()
        resp = self._request(
            "POST", ENTRIES_PATH, "create entry", json=payload, timeout=timeout,
        )
        data = self._json(resp, "create entry")
        try:
            return str(data["id"])
        except (KeyError, TypeError) as e:
            raise ServerError(f"create entry response carried no id: {data!r}") from e

    def get_by_id(self, id: str, *, timeout: Optional[float] = None) -> Optional[Entry]:
        """GET /entries/{id} -> Entry, or None on 404."""
        resp = self._request(
            "GET", f"{ENTRIES_PATH}/{id}", "get entry",
            timeout=timeout, allow_not_found=True,
        )
        if resp.status_code == 404:
            return None
        return Entry.from_dict(self._json(resp, "get entry"))

    def get_by_key(self, key: str, *, timeout: Optional[float] = None) -> Optional[Entry]:
        """Look up an entry by exact key through the search endpoint."""
        page = self.search(QueryFilter(key=key, limit=_LIST_PAGE_LIMIT), timeout=timeout)
        for item in page.items:
            if item.key == key:
                return self.get_by_id(item.id, timeout=timeout)
        return None

    def update(self, entry: Entry, *, timeout: Optional[float] = None) -> None:
        """PATCH /entries with the full entry."""
        self._request(
            "PATCH", ENTRIES_PATH, "update entry", json=entry.to_dict(), timeout=timeout,
        )

    def search(self, query: QueryFilter, *, timeout: Optional[float] = None) -> SearchResult:
        """GET /entries?key=&keyword=&category=&namespace=&limit=&offset="""
        resp = self._request(
            "GET", ENTRIES_PATH, "search entries",
            params=query.to_params(), timeout=timeout,
        )
        result = SearchResult.from_dict(self._json(resp, "search entries"))
        result.limit = query.limit
        result.offset = query.offset
        return result

    def list_all(self, query: QueryFilter, *, timeout: Optional[float] = None) -> ListResult:
        """
        Search, then fetch each matching entry in full.

        This is N+1 requests: one search plus one GET per item on the page.
        """
        page = self.search(query, timeout=timeout)
        entries = []
        for item in page.items:
            entry = self.get_by_id(item.id, timeout=timeout)
            if entry is not None:
                entries.append(entry)
        return ListResult(
            items=entries, total=page.total, limit=query.limit, offset=query.offset,
        )

    def count_by_category(self, category: str, *, timeout: Optional[float] = None) -> int:
        """Total from a one-row category search."""
        page = self.search(QueryFilter(category=category, limit=1), timeout=timeout)
        return page.total

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()
