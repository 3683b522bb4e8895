"""
Contracts for the HTTP connector engine.

- Canonical records: what the source emits and the destination consumes
  (Record, Change, RawData, StructuredData, Operation)
- Descriptors: what user scripts produce (RequestDescriptor,
  ResponseDescriptor, IntermediateRecord)
- ConnectorDefinition: the host contract (factories + declared parameters)
"""

import base64
import enum
import json
from dataclasses import dataclass, field
from typing import Callable

# Metadata key holding the read time (unix nanoseconds, decimal string)
METADATA_READ_AT = "opencdc.readAt"


class Operation(enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SNAPSHOT = "snapshot"


class RawData(bytes):
    """Opaque payload bytes."""

    def bytes(self) -> bytes:
        return bytes(self)


class StructuredData(dict):
    """Key/value payload. Serializes as compact JSON."""

    def bytes(self) -> bytes:
        return json.dumps(self, separators=(",", ":"), default=str).encode("utf-8")


Data = RawData | StructuredData


@dataclass
class Change:
    before: Data | None = None
    after: Data | None = None


@dataclass
class Record:
    """
    The host's unit of ingested data.

    Positions are opaque bytes. Key and payload values are either RawData or
    StructuredData, or None when absent.
    """

    position: bytes
    operation: Operation
    metadata: dict[str, str] = field(default_factory=dict)
    key: Data | None = None
    payload: Change = field(default_factory=Change)

    def to_json_dict(self) -> dict:
        """JSON-friendly dict. Bytes are base64, structured data stays an object."""
        return {
            "position": base64.b64encode(self.position).decode("ascii"),
            "operation": self.operation.value,
            "metadata": dict(self.metadata),
            "key": _data_to_json(self.key),
            "payload": {
                "before": _data_to_json(self.payload.before),
                "after": _data_to_json(self.payload.after),
            },
        }

    @classmethod
    def from_json_dict(cls, d: dict) -> "Record":
        payload = d.get("payload") or {}
        return cls(
            position=base64.b64decode(d.get("position") or ""),
            operation=Operation(d.get("operation") or Operation.CREATE.value),
            metadata={str(k): str(v) for k, v in (d.get("metadata") or {}).items()},
            key=_data_from_json(d.get("key")),
            payload=Change(
                before=_data_from_json(payload.get("before")),
                after=_data_from_json(payload.get("after")),
            ),
        )


def _data_to_json(value: Data | None):
    if value is None:
        return None
    if isinstance(value, StructuredData):
        return dict(value)
    return base64.b64encode(bytes(value)).decode("ascii")


def _data_from_json(value) -> Data | None:
    if value is None:
        return None
    if isinstance(value, dict):
        return StructuredData(value)
    return RawData(base64.b64decode(value))


# --- Script descriptors ---


@dataclass(frozen=True)
class RequestDescriptor:
    """Output of the request builder: what to fetch next."""

    url: str


@dataclass
class Payload:
    before: Data | None = None
    after: Data | None = None


@dataclass
class IntermediateRecord:
    """
    A record as produced by a parse script, before conversion.

    operation is the raw token the script set ("" when unset); it is only
    validated when the record is converted into a canonical Record.
    """

    position: bytes = b""
    operation: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    key: Data | None = None
    payload: Payload = field(default_factory=Payload)


@dataclass
class ResponseDescriptor:
    """Output of the response parser: carry-over data plus parsed records."""

    custom_data: dict = field(default_factory=dict)
    records: list[IntermediateRecord] = field(default_factory=list)


# --- Host contract ---


@dataclass(frozen=True)
class Parameter:
    """A declared configuration parameter."""

    description: str
    default: str | None = None
    required: bool = False


@dataclass
class ConnectorDefinition:
    """
    Everything a host needs to run a connector.

    A connector package provides one of these as a module-level constant
    (e.g. HTTP_CONNECTOR). Hosts never import connector internals directly,
    they only call the factories on this object.
    """

    # Unique key for this connector (e.g. "http")
    connector_key: str

    # () -> source with configure/open/read/ack/teardown
    new_source: Callable[[], object]

    # () -> destination with configure/open/write/teardown
    new_destination: Callable[[], object]

    # Declared parameters, keyed by configuration name
    source_parameters: dict[str, Parameter] = field(default_factory=dict)
    destination_parameters: dict[str, Parameter] = field(default_factory=dict)
