"""
Conversion between host values and script values.

Inbound values are copies, so whatever a script does to its arguments never
reaches engine state. Outbound values must already be the shim a script
constructs (Request, Response, Record); anything else is a TypeMismatch.
Key and payload fields are lenient: an unrecognized shape becomes absent.
"""

import copy
import logging

from ..engine.base import (
    IntermediateRecord,
    Payload,
    RawData,
    RequestDescriptor,
    ResponseDescriptor,
    StructuredData,
)
from ..engine.errors import TypeMismatch
from .shims import (
    URL,
    ScriptPayload,
    ScriptRawData,
    ScriptRecord,
    ScriptRequest,
    ScriptResponse,
    script_type_name,
)

logger = logging.getLogger(__name__)


# --- Host -> script ---


def config_to_script(configuration) -> dict[str, str]:
    return {str(k): str(v) for k, v in (configuration or {}).items()}


def position_to_script(position) -> bytes:
    return bytes(position or b"")


def custom_data_to_script(custom_data) -> dict:
    return copy.deepcopy(dict(custom_data or {}))


# --- Script -> host ---


def _mismatch(what: str, expected: str, value) -> TypeMismatch:
    actual = script_type_name(value)
    return TypeMismatch(f"{what}: expected {expected}, got {actual}", expected, actual)


def position_from_script(value) -> bytes:
    if value is None:
        return b""
    if isinstance(value, ScriptRawData):
        return value.value
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    raise _mismatch("Record.Position", "str or bytes", value)


def data_from_script(value):
    """RawData or StructuredData for the two supported shapes, None otherwise."""
    if isinstance(value, ScriptRawData):
        return RawData(value.value)
    if isinstance(value, dict):
        return StructuredData(copy.deepcopy(dict(value)))
    if value is not None:
        logger.debug(f"Dropping unsupported data value of type {script_type_name(value)}")
    return None


def record_from_script(value, index: int = 0) -> IntermediateRecord:
    if not isinstance(value, ScriptRecord):
        raise _mismatch(f"Response.Records[{index}]", "Record", value)

    operation = value.Operation
    if operation is None:
        operation = ""
    if not isinstance(operation, str):
        raise _mismatch(f"Response.Records[{index}].Operation", "str", operation)

    metadata = value.Metadata
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise _mismatch(f"Response.Records[{index}].Metadata", "dict", metadata)

    payload = Payload()
    if isinstance(value.Payload, ScriptPayload):
        payload = Payload(
            before=data_from_script(value.Payload.Before),
            after=data_from_script(value.Payload.After),
        )

    return IntermediateRecord(
        position=position_from_script(value.Position),
        operation=operation,
        metadata={str(k): str(v) for k, v in metadata.items()},
        key=data_from_script(value.Key),
        payload=payload,
    )


def request_from_script(value) -> RequestDescriptor:
    if not isinstance(value, ScriptRequest):
        raise _mismatch("getRequestData result", "Request", value)

    url = value.URL
    if isinstance(url, URL):
        url = url.toString()
    if not isinstance(url, str):
        raise _mismatch("Request.URL", "str", url)
    if not url.strip():
        raise TypeMismatch(
            "Request.URL is empty", expected="non-empty URL", actual=repr(url)
        )
    return RequestDescriptor(url=url)


def response_from_script(value) -> ResponseDescriptor:
    if not isinstance(value, ScriptResponse):
        raise _mismatch("parseResponse result", "Response", value)

    custom_data = value.CustomData
    if custom_data is None:
        custom_data = {}
    if not isinstance(custom_data, dict):
        raise _mismatch("Response.CustomData", "dict", custom_data)

    records = value.Records
    if records is None:
        records = []
    if not isinstance(records, (list, tuple)):
        raise _mismatch("Response.Records", "list", records)

    return ResponseDescriptor(
        custom_data=copy.deepcopy(dict(custom_data)),
        records=[record_from_script(r, i) for i, r in enumerate(records)],
    )
