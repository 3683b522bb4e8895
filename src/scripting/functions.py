"""
The two user-script roles: building the next request and parsing a response.

Each role wraps a ContextPool for its export. A role without a configured
script is simply None; the poll engine then uses its default behavior.
"""

import logging
from pathlib import Path

from ..engine.base import RequestDescriptor, ResponseDescriptor
from ..engine.errors import InitializationError, NotInitialized, ScriptExecutionError
from .marshal import (
    config_to_script,
    custom_data_to_script,
    position_to_script,
    request_from_script,
    response_from_script,
)
from .pool import ContextPool, ScriptContext

logger = logging.getLogger(__name__)

GET_REQUEST_DATA_FN = "getRequestData"
PARSE_RESPONSE_FN = "parseResponse"


def _invoke(ctx: ScriptContext, *args):
    try:
        return ctx.call(*args)
    except Exception as e:
        raise ScriptExecutionError(
            f"{ctx.export_name} raised {type(e).__name__}: {e}"
        ) from e


class ScriptRequestBuilder:
    """Calls getRequestData(config, previousResponse, position)."""

    def __init__(self, pool: ContextPool | None):
        self.pool = pool

    @classmethod
    def from_source(cls, source: str, filename: str = "<getRequestData>"):
        return cls(ContextPool(source, GET_REQUEST_DATA_FN, filename))

    def build(
        self,
        configuration: dict[str, str],
        previous_custom_data: dict | None,
        position: bytes | None,
        logger: logging.Logger | None = None,
    ) -> RequestDescriptor:
        if self.pool is None:
            raise NotInitialized(f"{GET_REQUEST_DATA_FN} script is not initialized")

        args = (
            config_to_script(configuration),
            custom_data_to_script(previous_custom_data),
            position_to_script(position),
        )
        with self.pool.loan(logger) as ctx:
            result = _invoke(ctx, *args)
        return request_from_script(result)


class ScriptResponseParser:
    """Calls parseResponse(body)."""

    def __init__(self, pool: ContextPool | None):
        self.pool = pool

    @classmethod
    def from_source(cls, source: str, filename: str = "<parseResponse>"):
        return cls(ContextPool(source, PARSE_RESPONSE_FN, filename))

    def parse(
        self, response_bytes: bytes, logger: logging.Logger | None = None
    ) -> ResponseDescriptor:
        if self.pool is None:
            raise NotInitialized(f"{PARSE_RESPONSE_FN} script is not initialized")

        with self.pool.loan(logger) as ctx:
            result = _invoke(ctx, bytes(response_bytes))
        return response_from_script(result)


def load_script(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise InitializationError(f"could not read script {path}: {e}") from e


def new_request_builder(path: str | None) -> ScriptRequestBuilder | None:
    """Builder for the script at `path`, or None when no path is configured."""
    if not path:
        return None
    logger.info(f"Loading {GET_REQUEST_DATA_FN} script from {path}")
    return ScriptRequestBuilder.from_source(load_script(path), path)


def new_response_parser(path: str | None) -> ScriptResponseParser | None:
    """Parser for the script at `path`, or None when no path is configured."""
    if not path:
        return None
    logger.info(f"Loading {PARSE_RESPONSE_FN} script from {path}")
    return ScriptResponseParser.from_source(load_script(path), path)
