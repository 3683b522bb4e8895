"""
HTTP destination: sends one request per record.

The request body is the record's Payload.After. The URL may be a jinja2
template rendered per record, e.g. "http://api/items/{{ record.key.id }}".
"""

import json
import logging
import threading

import requests
from jinja2 import StrictUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from src.engine.base import Record
from src.engine.errors import (
    ConnectorError,
    NotInitialized,
    PartialWriteError,
    TransportError,
)
from src.engine.http import HttpClient

from .config import DestinationConfig, normalize_query, parse_destination_config

logger = logging.getLogger(__name__)


def _filter_text(value) -> str:
    """Decode raw bytes for use in a URL template."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return "" if value is None else str(value)


def _filter_json(value) -> str:
    return json.dumps(value, separators=(",", ":"), default=_filter_text)


def _template_environment() -> SandboxedEnvironment:
    env = SandboxedEnvironment(autoescape=False, undefined=StrictUndefined)
    env.filters["text"] = _filter_text
    env.filters["json"] = _filter_json
    return env


class HttpDestination:
    """
    Usage:
        dest = HttpDestination()
        dest.configure({"url": "http://localhost/items/{{ record.key | text }}"})
        dest.open()
        written = dest.write(records)
        dest.teardown()
    """

    def __init__(self, session: requests.Session | None = None):
        self._session = session
        self.config: DestinationConfig | None = None
        self.client: HttpClient | None = None
        self.url_template = None

    def configure(self, cfg: dict):
        logger.info("Configuring destination...")
        self.config = parse_destination_config(cfg)
        self.url_template = None
        if "{{" in self.config.url:
            try:
                self.url_template = _template_environment().from_string(self.config.url)
            except TemplateError as e:
                raise ConnectorError(f"error while parsing the URL template: {e}") from e

    def open(self):
        if self.config is None:
            raise NotInitialized("destination must be configured before it is opened")
        self.client = HttpClient(
            method=self.config.method,
            headers=self.config.headers,
            timeout=self.config.timeout,
            session=self._session,
        )
        if self.config.validate_connection:
            if self.url_template is not None:
                logger.warning("Skipping connection check for a templated URL")
            else:
                self._check_connection()

    def _check_connection(self):
        url = self.config.url_with_params()
        resp = self.client.head(url)
        if resp.status >= 400:
            raise TransportError(
                f"invalid response status code from {url}: {resp.status}",
                status=resp.status,
                body=resp.body,
            )

    def evaluate_url(self, record: Record) -> str:
        if self.url_template is None:
            return self.config.url
        try:
            rendered = self.url_template.render(record=record)
        except TemplateError as e:
            raise ConnectorError(f"error while evaluating URL template: {e}") from e
        return normalize_query(rendered)

    def write(self, records: list[Record], cancel: threading.Event | None = None) -> int:
        """
        Send each record in order. Returns the number written; on the first
        failure raises PartialWriteError carrying how many went through.
        """
        if self.client is None:
            raise NotInitialized("destination is not open")

        for i, record in enumerate(records):
            try:
                self._send(record, cancel)
            except ConnectorError as e:
                logger.error(f"Write failed after {i} record(s): {e}")
                raise PartialWriteError(str(e), written=i) from e
        return len(records)

    def _send(self, record: Record, cancel: threading.Event | None):
        body = None
        if record.payload.after is not None:
            body = record.payload.after.bytes()

        url = self.config.url_with_params(self.evaluate_url(record))
        resp = self.client.request(url, body=body, cancel=cancel)
        if resp.status >= 400:
            raise TransportError(
                f"got an unexpected response status {resp.status} "
                f"from {self.config.method} {url}",
                status=resp.status,
                body=resp.body,
            )
        logger.debug(f"{self.config.method} {url} -> {resp.status}")

    def teardown(self):
        if self.client is not None:
            self.client.close()
            self.client = None
