from .base import (
    ConnectorDefinition,
    IntermediateRecord,
    Operation,
    Parameter,
    RawData,
    Record,
    RequestDescriptor,
    ResponseDescriptor,
    StructuredData,
)
from .checkpoint import CheckpointStore
from .engine import PollEngine, RateLimiter
from .errors import BackoffRetry, ConnectorError, EmptyCycle
from .http import HttpClient, HttpResponse

__all__ = [
    "BackoffRetry",
    "CheckpointStore",
    "ConnectorDefinition",
    "ConnectorError",
    "EmptyCycle",
    "HttpClient",
    "HttpResponse",
    "IntermediateRecord",
    "Operation",
    "Parameter",
    "PollEngine",
    "RateLimiter",
    "RawData",
    "Record",
    "RequestDescriptor",
    "ResponseDescriptor",
    "StructuredData",
]
