"""REST client for the remote tracking server.

Uploads finished traces and queries, tags, and deletes stored ones. All
requests go through httpx with retry on transient failures. The client's own
HTTP calls run under `suppress_tracing()` so auto-tracing never records them.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import httpx

from tracekit.foundation.config import get_settings
from tracekit.foundation.errors import ErrorCode, JsonDict, TracingException, code_for_status
from tracekit.runtime.observability.tracing import Trace, TraceInfo
from tracekit.runtime.retry import RetryPolicy, execute_with_retry_sync

from .auth import Credentials, resolve_credentials

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger("tracekit.tracking")

API_PREFIX = "/api/2.0/tracekit"
SEARCH_PAGE_SIZE = 100

T = TypeVar("T")

_tracking_uri: str | None = None
_client: TrackingClient | None = None
_client_lock = threading.Lock()


class PagedList(list, Generic[T]):  # type: ignore[type-arg]
    """A page of results plus the token for the next page (None when exhausted)."""

    def __init__(self, items: Iterable[T] = (), token: str | None = None) -> None:
        super().__init__(items)
        self.token = token


@dataclass
class TrackingClient:
    """Client for the tracking server's trace endpoints.

    Args:
        tracking_uri: Server base URL (e.g. "https://tracking.example.com")
        credentials: Auth credentials; resolved from env/credentials file when omitted
        timeout: Request timeout in seconds
        retry: Retry policy for transient failures
        transport: Custom httpx transport (tests use httpx.MockTransport)

    Example:
        >>> client = TrackingClient("http://localhost:5000")
        >>> client.log_trace(get_last_active_trace())
        >>> infos = client.search_traces(experiment_id="0", filter="tags.env = 'prod'")
    """

    tracking_uri: str
    credentials: Credentials | None = None
    timeout: float | None = None
    retry: RetryPolicy | None = None
    transport: httpx.BaseTransport | None = field(default=None, repr=False)
    _http: httpx.Client = field(init=False, repr=False)

    def __post_init__(self) -> None:
        settings = get_settings()
        self.tracking_uri = self.tracking_uri.rstrip("/")
        if self.credentials is None:
            self.credentials = resolve_credentials(self.tracking_uri)
        if self.retry is None:
            self.retry = RetryPolicy.from_settings(settings.retry)
        self._http = httpx.Client(
            base_url=f"{self.tracking_uri}{API_PREFIX}",
            headers={"Accept": "application/json", **self.credentials.auth_headers()},
            timeout=self.timeout or settings.tracking.timeout,
            verify=settings.tracking.verify_ssl,
            transport=self.transport,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Trace operations
    # ─────────────────────────────────────────────────────────────────────────

    def log_trace(self, trace: Trace) -> TraceInfo:
        """Upload a finished trace. Returns the server's view of its TraceInfo."""
        body = self._request("POST", "traces", "log_trace", json=trace.to_dict())
        return TraceInfo.model_validate(body.get("trace_info") or trace.info.model_dump())

    def get_trace(self, trace_id: str) -> Trace:
        body = self._request("GET", f"traces/{trace_id}", "get_trace")
        return Trace.from_dict(body["trace"])

    def search_traces(
        self,
        experiment_id: str | None = None,
        filter: str | None = None,  # noqa: A002 - mirrors the server's query parameter
        max_results: int = SEARCH_PAGE_SIZE,
        order_by: list[str] | None = None,
        page_token: str | None = None,
    ) -> PagedList[TraceInfo]:
        """Search trace infos, following pagination until `max_results` are collected."""
        if max_results <= 0:
            raise TracingException.create("search_traces", "max_results must be positive", ErrorCode.INVALID_PARAMS)
        exp = experiment_id or get_settings().tracing.experiment_id
        results: list[TraceInfo] = []
        token = page_token
        while len(results) < max_results:
            params: dict[str, Any] = {"experiment_id": exp, "max_results": min(SEARCH_PAGE_SIZE, max_results - len(results))}
            if filter:
                params["filter"] = filter
            if order_by:
                params["order_by"] = order_by
            if token:
                params["page_token"] = token
            body = self._request("GET", "traces", "search_traces", params=params)
            results.extend(TraceInfo.model_validate(t) for t in body.get("traces") or [])
            token = body.get("next_page_token") or None
            if not token:
                break
        return PagedList(results[:max_results], token)

    def set_trace_tag(self, trace_id: str, key: str, value: str) -> None:
        self._request("PATCH", f"traces/{trace_id}/tags", "set_trace_tag", json={"key": key, "value": str(value)})

    def delete_trace_tag(self, trace_id: str, key: str) -> None:
        self._request("DELETE", f"traces/{trace_id}/tags", "delete_trace_tag", json={"key": key})

    def delete_traces(
        self,
        experiment_id: str,
        trace_ids: list[str] | None = None,
        max_timestamp_millis: int | None = None,
        max_traces: int | None = None,
    ) -> int:
        """Delete traces by id, or everything older than `max_timestamp_millis`. Returns the count deleted."""
        if (trace_ids is None) == (max_timestamp_millis is None):
            raise TracingException.create("delete_traces", "Specify exactly one of trace_ids or max_timestamp_millis",
                                          ErrorCode.INVALID_PARAMS)
        payload: JsonDict = {"experiment_id": experiment_id}
        if trace_ids is not None:
            payload["trace_ids"] = trace_ids
        else:
            payload["max_timestamp_millis"] = max_timestamp_millis
            if max_traces is not None:
                payload["max_traces"] = max_traces
        body = self._request("POST", "traces/delete-traces", "delete_traces", json=payload)
        return int(body.get("traces_deleted", 0))

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> TrackingClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    # ─────────────────────────────────────────────────────────────────────────
    # HTTP plumbing
    # ─────────────────────────────────────────────────────────────────────────

    def _request(self, method: str, path: str, operation: str, **kwargs: Any) -> JsonDict:
        assert self.retry is not None
        return execute_with_retry_sync(lambda: self._send(method, path, operation, **kwargs), self.retry, operation)

    def _send(self, method: str, path: str, operation: str, **kwargs: Any) -> JsonDict:
        from tracekit.autolog import suppress_tracing

        with suppress_tracing():
            try:
                resp = self._http.request(method, path, **kwargs)
            except httpx.TimeoutException as e:
                raise TracingException.create(operation, f"Request timed out: {e}", ErrorCode.TIMEOUT) from e
            except httpx.TransportError as e:
                raise TracingException.create(operation, f"Network error: {e}", ErrorCode.NETWORK_ERROR) from e
        if resp.is_error:
            raise _error_from_response(resp, operation)
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise TracingException.create(operation, f"Invalid JSON from tracking server: {e}",
                                          ErrorCode.PARSE_ERROR) from e


def _error_from_response(resp: httpx.Response, operation: str) -> TracingException:
    """Map an HTTP error response to a TracingException, preferring the server's message."""
    message = f"HTTP {resp.status_code}"
    details = resp.text or None
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        message = f"{body.get('error_code', message)}: {body['message']}"
    logger.debug("%s failed with %s: %s", operation, resp.status_code, details)
    return TracingException.create(operation, message, code_for_status(resp.status_code), details=details)


# ─────────────────────────────────────────────────────────────────────────────
# Module-level helpers
# ─────────────────────────────────────────────────────────────────────────────


def set_tracking_uri(uri: str | None) -> None:
    """Point the default client at `uri` (None falls back to settings/env)."""
    global _tracking_uri, _client
    with _client_lock:
        _tracking_uri = uri.rstrip("/") if uri else None
        previous, _client = _client, None
    if previous is not None:
        previous.close()


def get_tracking_uri() -> str | None:
    """Explicitly set URI, else TRACEKIT_TRACKING_URI from settings, else None."""
    return _tracking_uri or get_settings().tracking.uri


def get_tracking_client() -> TrackingClient:
    """Shared client for the current tracking URI.

    Raises:
        TracingException: INVALID_PARAMS when no tracking URI is configured
    """
    global _client
    uri = get_tracking_uri()
    if not uri:
        raise TracingException.create("get_tracking_client",
                                      "No tracking URI configured; call set_tracking_uri() or set TRACEKIT_TRACKING_URI",
                                      ErrorCode.INVALID_PARAMS)
    with _client_lock:
        if _client is None or _client.tracking_uri != uri:
            if _client is not None:
                _client.close()
            _client = TrackingClient(uri)
        return _client
