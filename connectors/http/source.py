"""
HTTP source: polls a URL and emits records.

The poll loop itself lives in the engine (src.engine.engine.PollEngine); this
module wires configuration, the HTTP client and the optional scripts into it
and implements the host lifecycle: configure, open, read, ack, teardown.
"""

import logging
import threading

import requests

from src.engine.base import Record, RequestDescriptor
from src.engine.engine import PollEngine, RateLimiter
from src.engine.errors import NotInitialized, TransportError
from src.engine.http import HttpClient, HttpResponse
from src.scripting import new_request_builder, new_response_parser

from .config import SourceConfig, parse_source_config

logger = logging.getLogger(__name__)

# Longest slice of an error response body included in error messages
ERROR_BODY_PREVIEW = 512


class HttpSource:
    """
    Usage:
        source = HttpSource()
        source.configure({"url": "https://example.com/items", "pollingPeriod": "1m"})
        source.open(position=last_position)
        record = source.read(cancel=event)
        source.ack(record.position)
        source.teardown()
    """

    def __init__(self, session: requests.Session | None = None):
        self._session = session
        self.config: SourceConfig | None = None
        self.client: HttpClient | None = None
        self.engine: PollEngine | None = None

    def configure(self, cfg: dict):
        logger.info("Configuring source...")
        self.config = parse_source_config(cfg)

    def open(self, position: bytes | None = None):
        if self.config is None:
            raise NotInitialized("source must be configured before it is opened")
        config = self.config

        self.client = HttpClient(
            method=config.method,
            headers=config.headers,
            timeout=config.timeout,
            session=self._session,
        )
        if config.validate_connection:
            self._check_connection()

        request_builder = new_request_builder(config.get_request_data_script)
        response_parser = new_response_parser(config.parse_response_script)

        self.engine = PollEngine(
            fetch_fn=self._fetch,
            limiter=RateLimiter(config.polling_period),
            configuration=config.raw,
            default_request=RequestDescriptor(url=config.url),
            request_builder=request_builder,
            response_parser=response_parser,
            position=position,
        )
        logger.info(
            f"Source opened: {config.method} {config.url} "
            f"every {config.polling_period}s, "
            f"builder={'script' if request_builder else 'static'}, "
            f"parser={'script' if response_parser else 'raw'}"
        )

    def _check_connection(self):
        url = self.config.url_with_params()
        resp = self.client.head(url)
        if resp.status >= 400:
            raise TransportError(
                f"invalid response status code from {url}: {resp.status}",
                status=resp.status,
                body=resp.body,
            )

    def _fetch(
        self, request: RequestDescriptor, cancel: threading.Event | None
    ) -> HttpResponse:
        url = self.config.url_with_params(request.url)
        resp = self.client.request(url, cancel=cancel)
        if resp.status >= 300:
            raise TransportError(
                f"unexpected response status {resp.status} from {url}: "
                f"{resp.text()[:ERROR_BODY_PREVIEW]}",
                status=resp.status,
                body=resp.body,
            )
        return resp

    def read(self, cancel: threading.Event | None = None) -> Record:
        """
        Next record. Raises EmptyCycle when a poll produced nothing and
        Cancelled when the cancel event interrupts a poll.
        """
        if self.engine is None:
            raise NotInitialized("source is not open")
        return self.engine.read(cancel)

    def ack(self, position: bytes):
        logger.debug(f"Got ack for position {bytes(position)!r}")

    def teardown(self):
        if self.client is not None:
            self.client.close()
            self.client = None
        if self.engine is not None:
            logger.info(f"Source stats: {self.engine.get_stats()}")
            self.engine = None
