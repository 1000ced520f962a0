"""
REST client for the hosted backend (PostgREST-style API).

Tables are served under ``/rest/v1/<table>`` and stored procedures under
``/rest/v1/rpc/<name>``.  Filters use the ``column=op.value`` query syntax,
ordering ``order=column.desc`` and paging ``limit`` / ``offset``.

Every failure surfaces as :class:`BackendError`; callers decide whether to
fall back or propagate.
"""

import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:54321")
BACKEND_API_KEY = os.getenv("BACKEND_API_KEY")
BACKEND_TIMEOUT_SEC = float(os.getenv("BACKEND_TIMEOUT_SEC", "10"))

FILTER_OPERATORS = frozenset({"eq", "neq", "gt", "gte", "lt", "lte", "ilike", "in", "is"})

Filter = Tuple[str, str, Any]


class BackendError(Exception):
    """A call to the hosted backend failed."""

    def __init__(self, operation: str, message: str, status_code: Optional[int] = None):
        self.operation = operation
        self.status_code = status_code
        self.message = message
        super().__init__(
            f"{operation} failed"
            + (f" ({status_code})" if status_code is not None else "")
            + f": {message}"
        )


def _render_value(op: str, value: Any) -> str:
    if op == "in":
        return "(" + ",".join(str(v) for v in value) + ")"
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def build_filters(filters: Optional[Iterable[Filter]]) -> List[Tuple[str, str]]:
    """Translate ``(column, op, value)`` triples to query parameters."""
    params = []
    for column, op, value in filters or ():
        if op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator {op!r}")
        params.append((column, f"{op}.{_render_value(op, value)}"))
    return params


def parse_content_range(header: Optional[str]) -> Optional[int]:
    """Total row count from a ``Content-Range: 0-24/573`` header."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


class BackendClient:
    """Thin wrapper around the backend's REST and RPC endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = BACKEND_TIMEOUT_SEC,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or BACKEND_URL).rstrip("/")
        self.api_key = api_key or BACKEND_API_KEY
        if not self.api_key:
            raise ValueError("BACKEND_API_KEY not set in environment")
        self.timeout = timeout
        self._session = session or requests.Session()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        params: Optional[List[Tuple[str, str]]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        url = f"{self.base_url}/rest/v1/{path}"
        try:
            resp = self._session.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(headers),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            logger.error("Backend %s network error: %s", operation, exc)
            raise BackendError(operation, str(exc)) from exc

        if resp.status_code >= 400:
            try:
                body = resp.json()
                message = body.get("message") or body.get("error") or str(body)
            except ValueError:
                message = resp.text or resp.reason
            logger.error("Backend %s returned %d: %s", operation, resp.status_code, message)
            raise BackendError(operation, message, resp.status_code)

        return resp

    @staticmethod
    def _json(resp: requests.Response, operation: str) -> Any:
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise BackendError(operation, "malformed JSON body", resp.status_code) from exc

    # ------------------------------------------------------------------
    # Table access
    # ------------------------------------------------------------------

    def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Iterable[Filter]] = None,
        order: Optional[str] = None,
        ascending: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        single: bool = False,
        maybe_single: bool = False,
    ) -> Any:
        """
        Read rows from ``table``.

        Returns a list of dicts, or one dict when ``single`` is set
        (exactly one row required) or ``maybe_single`` is set (``None``
        when nothing matched).
        """
        operation = f"select {table}"
        params = [("select", " ".join(columns.split()))]
        params.extend(build_filters(filters))
        if order:
            params.append(("order", f"{order}.{'asc' if ascending else 'desc'}"))
        if limit is not None:
            params.append(("limit", str(limit)))
        if offset:
            params.append(("offset", str(offset)))

        resp = self._request("GET", table, operation, params=params)
        rows = self._json(resp, operation) or []
        if not isinstance(rows, list):
            raise BackendError(operation, "expected a list of rows", resp.status_code)

        logger.debug("Backend %s: %d rows", operation, len(rows))

        if single:
            if len(rows) != 1:
                raise BackendError(operation, f"expected exactly one row, got {len(rows)}", 406)
            return rows[0]
        if maybe_single:
            if len(rows) > 1:
                raise BackendError(operation, f"expected at most one row, got {len(rows)}", 406)
            return rows[0] if rows else None
        return rows

    def count(self, table: str, filters: Optional[Iterable[Filter]] = None) -> int:
        """Exact number of rows matching ``filters``."""
        operation = f"count {table}"
        params = [("select", "*")] + build_filters(filters)
        resp = self._request(
            "HEAD", table, operation, params=params, headers={"Prefer": "count=exact"}
        )
        total = parse_content_range(resp.headers.get("Content-Range"))
        if total is None:
            raise BackendError(operation, "missing Content-Range header", resp.status_code)
        return total

    def insert(self, table: str, row: Dict[str, Any]) -> List[Dict[str, Any]]:
        operation = f"insert {table}"
        resp = self._request(
            "POST", table, operation, json=row, headers={"Prefer": "return=representation"}
        )
        return self._json(resp, operation) or []

    def update(
        self,
        table: str,
        values: Dict[str, Any],
        filters: Iterable[Filter],
    ) -> List[Dict[str, Any]]:
        operation = f"update {table}"
        params = build_filters(filters)
        if not params:
            # An unfiltered PATCH would touch every row.
            raise ValueError("update() requires at least one filter")
        resp = self._request(
            "PATCH", table, operation, params=params, json=values,
            headers={"Prefer": "return=representation"},
        )
        return self._json(resp, operation) or []

    # ------------------------------------------------------------------
    # Stored procedures
    # ------------------------------------------------------------------

    def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Call a stored procedure and return its decoded result."""
        operation = f"rpc {name}"
        resp = self._request("POST", f"rpc/{name}", operation, json=params or {})
        result = self._json(resp, operation)
        logger.info("Backend rpc %s completed", name)
        return result


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_backend_client: Optional[BackendClient] = None


def get_backend_client() -> BackendClient:
    global _backend_client
    if _backend_client is None:
        _backend_client = BackendClient()
    return _backend_client
