"""
HTTP transport shared by the source and destination.

A thin wrapper around a requests Session: fixed method, static headers and a
timeout. Status codes are not interpreted here; callers decide which statuses
are errors.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Mapping

import requests

from .errors import Cancelled, TransportError

logger = logging.getLogger(__name__)

# How often a cancellable call checks its cancel event
_CANCEL_POLL_SECONDS = 0.05


@dataclass(frozen=True)
class HttpResponse:
    status: int
    url: str
    # Repeated headers arrive joined with ", " by requests
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")


class HttpClient:
    """
    Shared, read-only HTTP client.

    The session is created once and reused across calls; nothing on the
    client is mutated per call, so it is safe to share between threads.

    Usage:
        client = HttpClient(method="GET", headers={"Accept": "application/json"})
        resp = client.request("https://example.com/items", cancel=event)
        client.close()
    """

    def __init__(
        self,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        self.method = method
        self.headers = dict(headers or {})
        self.timeout = timeout
        self._session = session or requests.Session()
        self._executor: ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()

    def request(
        self,
        url: str,
        *,
        method: str | None = None,
        body: bytes | None = None,
        cancel: threading.Event | None = None,
    ) -> HttpResponse:
        """
        Send one request and read the full body.

        With a cancel event, the call runs on a worker thread and this method
        raises Cancelled as soon as the event is set. The abandoned response
        is dropped when it eventually arrives.
        """
        method = method or self.method
        if cancel is None:
            return self._send(method, url, body)

        if cancel.is_set():
            raise Cancelled(f"{method} {url} cancelled before sending")

        future = self._get_executor().submit(self._send, method, url, body)
        while True:
            try:
                return future.result(timeout=_CANCEL_POLL_SECONDS)
            except FutureTimeout:
                if cancel.is_set():
                    future.cancel()
                    logger.debug(f"Abandoning in-flight {method} {url}")
                    raise Cancelled(f"{method} {url} cancelled while in flight")

    def head(self, url: str, cancel: threading.Event | None = None) -> HttpResponse:
        return self.request(url, method="HEAD", cancel=cancel)

    def close(self):
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False, cancel_futures=True)
                self._executor = None
        self._session.close()

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=2, thread_name_prefix="http-call"
                )
            return self._executor

    def _send(self, method: str, url: str, body: bytes | None) -> HttpResponse:
        try:
            resp = self._session.request(
                method,
                url,
                headers=self.headers,
                data=body,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"error sending {method} request to {url}: {e}") from e

        try:
            return HttpResponse(
                status=resp.status_code,
                url=url,
                headers=dict(resp.headers),
                body=resp.content or b"",
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"error reading response body from {url}: {e}") from e
        finally:
            resp.close()
