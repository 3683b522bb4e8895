"""
Script bridge (RestrictedPython).

Exports: ContextPool, ScriptRequestBuilder, ScriptResponseParser and the
factories that build them from configured script paths.
"""

from .functions import (
    GET_REQUEST_DATA_FN,
    PARSE_RESPONSE_FN,
    ScriptRequestBuilder,
    ScriptResponseParser,
    new_request_builder,
    new_response_parser,
)
from .pool import ContextPool, ScriptContext

__all__ = [
    "GET_REQUEST_DATA_FN",
    "PARSE_RESPONSE_FN",
    "ContextPool",
    "ScriptContext",
    "ScriptRequestBuilder",
    "ScriptResponseParser",
    "new_request_builder",
    "new_response_parser",
]
