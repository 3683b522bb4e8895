"""Conversion from script output and raw responses to canonical records."""

import time

from .base import (
    METADATA_READ_AT,
    Change,
    IntermediateRecord,
    Operation,
    RawData,
    Record,
)
from .errors import ConversionError
from .http import HttpResponse

_OPERATIONS = {op.value: op for op in Operation}


def to_operation(token: str) -> Operation:
    """Map an operation token to an Operation. An empty token means create."""
    if not token:
        return Operation.CREATE
    try:
        return _OPERATIONS[token]
    except KeyError:
        raise ConversionError(
            f"invalid operation {token!r}, expected one of {sorted(_OPERATIONS)}"
        ) from None


def to_record(record: IntermediateRecord, read_at: int | None = None) -> Record:
    """
    Convert a parsed intermediate record into a canonical Record.

    Raises ConversionError for an unknown operation token. The read
    timestamp is added to metadata unless the script already set it.
    """
    metadata = dict(record.metadata)
    metadata.setdefault(METADATA_READ_AT, str(read_at or time.time_ns()))
    return Record(
        position=bytes(record.position),
        operation=to_operation(record.operation),
        metadata=metadata,
        key=record.key,
        payload=Change(before=record.payload.before, after=record.payload.after),
    )


def fallback_record(response: HttpResponse, now: int | None = None) -> Record:
    """
    Turn a whole response into one record when no parse script is configured.

    Key and position come from the read timestamp: distinct per read, not
    meaningful. Response headers are forwarded as metadata.
    """
    now = now or time.time_ns()
    stamp = str(now).encode("ascii")

    metadata = {name: str(value) for name, value in response.headers.items()}
    metadata[METADATA_READ_AT] = str(now)

    return Record(
        position=stamp,
        operation=Operation.CREATE,
        metadata=metadata,
        key=RawData(stamp),
        payload=Change(before=None, after=RawData(response.body)),
    )
