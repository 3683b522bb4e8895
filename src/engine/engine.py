"""
Polling engine for the HTTP source.

Handles rate limiting, request building, parsing, buffering and position
tracking. Zero HTTP-specific code: the request is sent through fetch_fn and
all script behavior comes through the request builder and response parser.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from .base import Record, RequestDescriptor
from .convert import fallback_record, to_record
from .errors import Cancelled, EmptyCycle
from .http import HttpResponse

__all__ = ["PollEngine", "PositionState", "RateLimiter"]

logger = logging.getLogger(__name__)


# --- Rate Limiter ---


class RateLimiter:
    """
    Thread-safe token bucket with a burst of one.

    The first wait returns immediately; every later permit is spaced at least
    `interval` seconds after the previous one. A cancelled wait gives its
    slot back.
    """

    def __init__(self, interval: float = 300.0):
        self.interval = max(0.0, interval)
        self.next_slot = 0.0
        self.lock = threading.Lock()
        self.total_requests = 0
        self.total_wait_time = 0.0

    def wait(self, cancel: threading.Event | None = None):
        with self.lock:
            now = time.monotonic()
            start = max(now, self.next_slot)
            wait = start - now
            # Reserve the slot so concurrent callers queue up behind it
            self.next_slot = start + self.interval
            reserved = self.next_slot
            self.total_requests += 1

        if wait <= 0:
            return

        if cancel is None:
            time.sleep(wait)
        elif cancel.wait(wait):
            with self.lock:
                if self.next_slot == reserved:
                    self.next_slot = start
                self.total_requests -= 1
            raise Cancelled("rate limiter wait cancelled")

        with self.lock:
            self.total_wait_time += wait

    def get_stats(self):
        with self.lock:
            avg_wait = (
                self.total_wait_time / self.total_requests
                if self.total_requests > 0
                else 0
            )
            return {
                "total_requests": self.total_requests,
                "total_wait_time": self.total_wait_time,
                "avg_wait_time": avg_wait,
            }


# --- Poll engine ---


@dataclass
class PositionState:
    """Last emitted position plus the custom data from the latest response."""

    position: bytes = b""
    custom_data: dict = field(default_factory=dict)


class PollEngine:
    """
    The source's read path.

    Each read() pops the head of the record buffer. When the buffer is
    empty, one full cycle runs: wait for the limiter, build the request,
    fetch, parse (or fall back to one record per response), convert and
    buffer. A cycle that yields nothing raises EmptyCycle.

    Polls are serialized: the limiter spaces them and a lock keeps two
    cycles from running at once. Records already buffered keep draining even
    after the caller's cancel event is set; cancellation only interrupts a
    cycle.

    Usage:
        engine = PollEngine(fetch_fn, RateLimiter(60), config, default_request)
        record = engine.read(cancel=event)
    """

    def __init__(
        self,
        fetch_fn: Callable[[RequestDescriptor, threading.Event | None], HttpResponse],
        limiter: RateLimiter,
        configuration: dict[str, str],
        default_request: RequestDescriptor,
        request_builder=None,
        response_parser=None,
        position: bytes | None = None,
    ):
        self.fetch_fn = fetch_fn
        self.limiter = limiter
        self.configuration = configuration
        self.default_request = default_request
        self.request_builder = request_builder
        self.response_parser = response_parser

        self.state = PositionState(position=bytes(position or b""))
        self.buffer: deque[Record] = deque()
        self._lock = threading.Lock()
        self.total_polls = 0
        self.total_records = 0

    def read(self, cancel: threading.Event | None = None) -> Record:
        with self._lock:
            if not self.buffer:
                self._fill(cancel)
            if not self.buffer:
                raise EmptyCycle("poll cycle returned no records, retry later")

            record = self.buffer.popleft()
            self.state.position = record.position
            return record

    def _next_request(self) -> RequestDescriptor:
        if self.request_builder is None:
            return self.default_request
        return self.request_builder.build(
            self.configuration, self.state.custom_data, self.state.position
        )

    def _fill(self, cancel: threading.Event | None):
        self.limiter.wait(cancel)

        request = self._next_request()
        response = self.fetch_fn(request, cancel)
        self.total_polls += 1

        if self.response_parser is None:
            records = [fallback_record(response)]
        else:
            parsed = self.response_parser.parse(response.body)
            read_at = time.time_ns()
            # Convert everything first so a bad record leaves the buffer untouched
            records = [to_record(r, read_at) for r in parsed.records]
            self.state.custom_data = dict(parsed.custom_data)

        self.buffer.extend(records)
        self.total_records += len(records)
        logger.debug(
            f"Poll {self.total_polls}: {request.url} -> {len(records)} record(s)"
        )

    def get_stats(self):
        return {
            "total_polls": self.total_polls,
            "total_records": self.total_records,
            "buffered": len(self.buffer),
            **self.limiter.get_stats(),
        }
