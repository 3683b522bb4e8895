"""
Objects user scripts construct and receive.

Scripts build host-shaped values with these constructors and return them;
the marshaler then checks the returned shape and converts it. Attribute
names are capitalized to match the fields scripts are documented to set
(rec.Position, rec.Payload.After, response.CustomData, ...).

Classes that scripts assign attributes on carry `_guarded_writes`, which is
how RestrictedPython's write guard recognizes objects that accept writes.
"""

import json
import logging
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

__all__ = [
    "JSON",
    "SCRIPT_BINDINGS",
    "ScriptJSON",
    "ScriptLogger",
    "ScriptPayload",
    "ScriptRawData",
    "ScriptRecord",
    "ScriptRequest",
    "ScriptResponse",
    "ScriptStructuredData",
    "URL",
    "URLSearchParams",
    "script_type_name",
]


def script_type_name(value) -> str:
    """Type name as a script author would know it."""
    return getattr(type(value), "script_name", type(value).__name__)


def _to_bytes(value) -> bytes:
    if value is None:
        return b""
    if isinstance(value, ScriptRawData):
        return value.value
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    raise TypeError(f"RawData expects str or bytes, got {script_type_name(value)}")


# --- Constructors ---


class ScriptRawData:
    """Opaque bytes. RawData("abc"), RawData(b"abc") or RawData() for empty."""

    script_name = "RawData"
    _guarded_writes = True
    __slots__ = ("value",)

    def __init__(self, value=None):
        self.value = _to_bytes(value)

    def bytes(self) -> bytes:
        return self.value

    def text(self) -> str:
        return self.value.decode("utf-8", errors="replace")

    def __eq__(self, other):
        if isinstance(other, ScriptRawData):
            return self.value == other.value
        return NotImplemented

    def __hash__(self):
        return hash(self.value)

    def __repr__(self):
        return f"RawData({self.value!r})"


class ScriptStructuredData(dict):
    """Key/value payload. Scripts fill it like a dict."""

    script_name = "StructuredData"
    _guarded_writes = True


class ScriptPayload:
    script_name = "Payload"
    _guarded_writes = True
    __slots__ = ("Before", "After")

    def __init__(self):
        self.Before = None
        self.After = None


class ScriptRecord:
    """A record under construction. Metadata starts as an empty dict."""

    script_name = "Record"
    _guarded_writes = True
    __slots__ = ("Position", "Operation", "Metadata", "Key", "Payload")

    def __init__(self):
        self.Position = b""
        self.Operation = ""
        self.Metadata = {}
        self.Key = None
        self.Payload = ScriptPayload()

    def __repr__(self):
        return (
            f"Record(Position={self.Position!r}, Operation={self.Operation!r}, "
            f"Key={self.Key!r})"
        )


class ScriptRequest:
    script_name = "Request"
    _guarded_writes = True
    __slots__ = ("URL",)

    def __init__(self):
        self.URL = ""


class ScriptResponse:
    script_name = "Response"
    _guarded_writes = True
    __slots__ = ("CustomData", "Records")

    def __init__(self):
        self.CustomData = {}
        self.Records = []


# --- URL helper ---


def _param_str(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, ScriptRawData):
        return value.text()
    return str(value)


class URLSearchParams:
    """Ordered query parameters. Insertion order is kept when serializing."""

    def __init__(self, query: str = ""):
        self._pairs = parse_qsl(query.lstrip("?"), keep_blank_values=True)

    def get(self, name):
        for key, value in self._pairs:
            if key == name:
                return value
        return None

    def getAll(self, name):
        return [value for key, value in self._pairs if key == name]

    def has(self, name) -> bool:
        return any(key == name for key, _ in self._pairs)

    def append(self, name, value):
        self._pairs.append((str(name), _param_str(value)))

    def set(self, name, value):
        """Replace the first `name` and drop the rest, or append if missing."""
        name, value = str(name), _param_str(value)
        pairs = []
        replaced = False
        for key, old in self._pairs:
            if key != name:
                pairs.append((key, old))
            elif not replaced:
                pairs.append((name, value))
                replaced = True
        if not replaced:
            pairs.append((name, value))
        self._pairs = pairs

    def delete(self, name):
        self._pairs = [(k, v) for k, v in self._pairs if k != name]

    def keys(self):
        return [key for key, _ in self._pairs]

    def toString(self) -> str:
        return urlencode(self._pairs)

    def __str__(self):
        return self.toString()


class URL:
    """
    Parsed absolute URL with mutable query parameters.

        url = URL(cfg["url"])
        url.searchParams.set("pageToken", token)
        request.URL = url.toString()
    """

    script_name = "URL"

    def __init__(self, value):
        value = _param_str(value)
        parts = urlsplit(value)
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"invalid URL: {value!r}")
        self._parts = parts
        self.searchParams = URLSearchParams(parts.query)

    @property
    def protocol(self) -> str:
        return f"{self._parts.scheme}:"

    @property
    def host(self) -> str:
        return self._parts.netloc.rpartition("@")[2]

    @property
    def hostname(self) -> str:
        return self._parts.hostname or ""

    @property
    def port(self) -> str:
        return str(self._parts.port) if self._parts.port is not None else ""

    @property
    def pathname(self) -> str:
        path = self._parts.path
        if not path and self._parts.scheme in ("http", "https"):
            return "/"
        return path

    @property
    def search(self) -> str:
        query = self.searchParams.toString()
        return f"?{query}" if query else ""

    @property
    def hash(self) -> str:
        return f"#{self._parts.fragment}" if self._parts.fragment else ""

    @property
    def href(self) -> str:
        return self.toString()

    def toString(self) -> str:
        return urlunsplit(
            (
                self._parts.scheme,
                self._parts.netloc,
                self.pathname,
                self.searchParams.toString(),
                self._parts.fragment,
            )
        )

    def __str__(self):
        return self.toString()

    def __repr__(self):
        return f"URL({self.toString()!r})"


# --- JSON and logging ---


def _json_default(value):
    if isinstance(value, ScriptRawData):
        return value.text()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    raise TypeError(f"{script_type_name(value)} is not JSON serializable")


class ScriptJSON:
    """JSON.parse / JSON.stringify for scripts."""

    script_name = "JSON"

    def parse(self, text):
        if isinstance(text, ScriptRawData):
            text = text.value
        if isinstance(text, (bytes, bytearray)):
            text = bytes(text).decode("utf-8")
        return json.loads(text)

    def stringify(self, value) -> str:
        return json.dumps(value, separators=(",", ":"), default=_json_default)


JSON = ScriptJSON()


class ScriptLogger:
    """The `logger` a script sees. Forwards to a standard library logger."""

    script_name = "logger"

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def debug(self, msg, *args):
        self._logger.debug(str(msg), *args)

    def info(self, msg, *args):
        self._logger.info(str(msg), *args)

    def warning(self, msg, *args):
        self._logger.warning(str(msg), *args)

    def error(self, msg, *args):
        self._logger.error(str(msg), *args)

    Debug = debug
    Info = info
    Warn = warning
    Error = error


# Injected identically into every script context. The values are classes and
# a stateless helper, so sharing them between contexts leaks nothing.
SCRIPT_BINDINGS = {
    "Record": ScriptRecord,
    "RawData": ScriptRawData,
    "StructuredData": ScriptStructuredData,
    "Request": ScriptRequest,
    "RequestData": ScriptRequest,
    "Response": ScriptResponse,
    "ResponseData": ScriptResponse,
    "URL": URL,
    "JSON": JSON,
}
