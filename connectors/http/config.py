"""
Configuration for the HTTP source and destination.

Configuration arrives from the host as a flat dict of strings. Parameter
declarations double as the source of defaults; parse_source_config() and
parse_destination_config() turn a raw dict into a typed config or raise
InvalidConfig.
"""

import logging
import re
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from src.engine.base import Parameter
from src.engine.errors import InvalidConfig

logger = logging.getLogger(__name__)

# ============================================================================
# Parameter declarations
# ============================================================================

URL = "url"
METHOD = "method"
HEADERS = "headers"
PARAMS_PREFIX = "params."
VALIDATE_CONNECTION = "validateConnection"
TIMEOUT = "timeout"
POLLING_PERIOD = "pollingPeriod"
SCRIPT_GET_REQUEST_DATA = "script.getRequestData"
SCRIPT_PARSE_RESPONSE = "script.parseResponse"

SOURCE_METHODS = ("GET", "HEAD", "OPTIONS")
DESTINATION_METHODS = ("POST", "PUT", "DELETE", "PATCH")

_SHARED_PARAMETERS = {
    HEADERS: Parameter(
        "HTTP headers to use in the request, comma separated Name: value pairs"
    ),
    f"{PARAMS_PREFIX}*": Parameter(
        "Parameters to add to the request URL query (params.<name>)"
    ),
    VALIDATE_CONNECTION: Parameter(
        "Send a HEAD request to the URL when opening and fail on status >= 400",
        default="false",
    ),
    TIMEOUT: Parameter("Timeout for each HTTP request", default="30s"),
}

SOURCE_PARAMETERS = {
    URL: Parameter("HTTP URL to send requests to", required=True),
    METHOD: Parameter(
        f"HTTP method to use in the request ({'|'.join(SOURCE_METHODS)})",
        default="GET",
    ),
    **_SHARED_PARAMETERS,
    POLLING_PERIOD: Parameter(
        "How often the connector will get data from the url", default="5m"
    ),
    SCRIPT_GET_REQUEST_DATA: Parameter(
        "Path to a script defining getRequestData(config, previousResponse, position)"
    ),
    SCRIPT_PARSE_RESPONSE: Parameter(
        "Path to a script defining parseResponse(body)"
    ),
}

DESTINATION_PARAMETERS = {
    URL: Parameter(
        "HTTP URL to send requests to. May be a template using {{ record }}",
        required=True,
    ),
    METHOD: Parameter(
        f"HTTP method to use in the request ({'|'.join(DESTINATION_METHODS)})",
        default="POST",
    ),
    **_SHARED_PARAMETERS,
}


# ============================================================================
# Typed configs
# ============================================================================


@dataclass(frozen=True)
class HttpConfig:
    url: str
    method: str
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)
    validate_connection: bool = False
    timeout: float = 30.0
    # The configuration as given, with defaults filled in
    raw: dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    def url_with_params(self, url: str | None = None) -> str:
        return add_params_to_url(self.url if url is None else url, self.params)


@dataclass(frozen=True)
class SourceConfig(HttpConfig):
    polling_period: float = 300.0
    get_request_data_script: str | None = None
    parse_response_script: str | None = None


@dataclass(frozen=True)
class DestinationConfig(HttpConfig):
    pass


# ============================================================================
# Value parsers
# ============================================================================

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_NUMBER = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def parse_duration(value: str, name: str = "duration") -> float:
    """
    Parse a Go-style duration ("300ms", "1.5s", "1h30m") into seconds.
    "0" and bare numbers are seconds.
    """
    text = str(value).strip()
    if _NUMBER.fullmatch(text):
        return float(text)

    pos = 0
    total = 0.0
    for m in _DURATION_PART.finditer(text):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    if pos == 0 or pos != len(text):
        raise InvalidConfig(f"invalid {name} {value!r}, expected e.g. 30s, 5m, 1h30m")
    return total


def parse_bool(value: str, name: str = "value") -> bool:
    text = str(value).strip().lower()
    if text in ("1", "t", "true", "yes"):
        return True
    if text in ("0", "f", "false", "no", ""):
        return False
    raise InvalidConfig(f"invalid {name} {value!r}, expected true or false")


def parse_headers(value: str | None) -> dict[str, str]:
    """Parse "Name: value, Other: value" into a dict."""
    headers = {}
    for item in (value or "").split(","):
        if not item.strip():
            continue
        name, sep, header_value = item.partition(":")
        if not sep or not name.strip():
            raise InvalidConfig(
                f"invalid header {item.strip()!r}, expected format Name: value"
            )
        headers[name.strip()] = header_value.strip()
    return headers


def parse_params(cfg: dict[str, str]) -> dict[str, str]:
    params = {}
    for key, value in cfg.items():
        if not key.startswith(PARAMS_PREFIX):
            continue
        name = key[len(PARAMS_PREFIX):]
        if not name:
            raise InvalidConfig(f"invalid parameter key {key!r}, missing name")
        params[name] = value
    return params


def validate_url(url: str, templated: bool = False) -> str:
    url = (url or "").strip()
    if not url:
        raise InvalidConfig(f"{URL} is required")
    if templated:
        return url
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidConfig(f"invalid {URL} {url!r}, expected an http(s) URL")
    return url


def normalize_query(url: str) -> str:
    """Re-encode a URL's query string with keys sorted."""
    parts = urlsplit(url)
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    query = urlencode(sorted(pairs, key=lambda kv: kv[0]))
    return urlunsplit(parts._replace(query=query))


def add_params_to_url(url: str, params: dict[str, str]) -> str:
    """
    Merge params into the URL query, replacing same-named keys. The query is
    re-encoded with keys sorted. With no params the URL is returned unchanged.
    """
    if not params:
        return url
    parts = urlsplit(url)
    pairs = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if k not in params
    ]
    pairs.extend(params.items())
    query = urlencode(sorted(pairs, key=lambda kv: kv[0]))
    return urlunsplit(parts._replace(query=query))


# ============================================================================
# Config parsing
# ============================================================================


def _with_defaults(cfg: dict, parameters: dict[str, Parameter]) -> dict[str, str]:
    resolved = {str(k): str(v) for k, v in (cfg or {}).items()}
    for name, param in parameters.items():
        if name.endswith("*"):
            continue
        if param.required and not resolved.get(name, "").strip():
            raise InvalidConfig(f"{name} is required")
        if param.default is not None and not resolved.get(name, "").strip():
            resolved[name] = param.default

    for key in resolved:
        if key not in parameters and not key.startswith(PARAMS_PREFIX):
            logger.warning(f"Ignoring unknown configuration key {key!r}")
    return resolved


def _parse_method(value: str, allowed: tuple[str, ...]) -> str:
    method = value.strip().upper()
    if method not in allowed:
        raise InvalidConfig(
            f"invalid {METHOD} {value!r}, expected one of {', '.join(allowed)}"
        )
    return method


def _parse_shared(cfg: dict[str, str], templated: bool = False) -> dict:
    timeout = parse_duration(cfg[TIMEOUT], TIMEOUT)
    if timeout <= 0:
        raise InvalidConfig(f"{TIMEOUT} must be positive, got {cfg[TIMEOUT]!r}")
    return {
        "url": validate_url(cfg.get(URL, ""), templated=templated),
        "headers": parse_headers(cfg.get(HEADERS)),
        "params": parse_params(cfg),
        "validate_connection": parse_bool(cfg[VALIDATE_CONNECTION], VALIDATE_CONNECTION),
        "timeout": timeout,
        "raw": dict(cfg),
    }


def parse_source_config(cfg: dict) -> SourceConfig:
    resolved = _with_defaults(cfg, SOURCE_PARAMETERS)
    polling_period = parse_duration(resolved[POLLING_PERIOD], POLLING_PERIOD)
    return SourceConfig(
        method=_parse_method(resolved[METHOD], SOURCE_METHODS),
        polling_period=polling_period,
        get_request_data_script=resolved.get(SCRIPT_GET_REQUEST_DATA) or None,
        parse_response_script=resolved.get(SCRIPT_PARSE_RESPONSE) or None,
        **_parse_shared(resolved),
    )


def parse_destination_config(cfg: dict) -> DestinationConfig:
    resolved = _with_defaults(cfg, DESTINATION_PARAMETERS)
    templated = "{{" in resolved.get(URL, "")
    return DestinationConfig(
        method=_parse_method(resolved[METHOD], DESTINATION_METHODS),
        **_parse_shared(resolved, templated=templated),
    )
