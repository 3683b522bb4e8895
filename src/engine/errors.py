"""
Error taxonomy shared by the engine, the scripting bridge and the connectors.

Per-cycle errors propagate unchanged to the host. The only non-failure signal
is BackoffRetry (and its EmptyCycle subclass), which tells the host to try
again later.
"""


class ConnectorError(Exception):
    """Base class for every error raised by this package."""

    pass


class InvalidConfig(ConnectorError, ValueError):
    """Raised when connector configuration is missing or malformed."""

    pass


class InitializationError(ConnectorError):
    """Script file unreadable, not compilable, or missing its export."""

    pass


class NotInitialized(ConnectorError):
    """A script function was called but no script was configured."""

    pass


class ScriptExecutionError(ConnectorError):
    """The user script raised while running."""

    pass


class TypeMismatch(ConnectorError):
    """A script returned a value of the wrong shape."""

    def __init__(self, message: str, expected: str, actual: str):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class ConversionError(ConnectorError):
    """An intermediate record could not be turned into a canonical record."""

    pass


class TransportError(ConnectorError):
    """Network failure, or an HTTP status the caller treats as an error."""

    def __init__(self, message: str, status: int | None = None, body: bytes = b""):
        super().__init__(message)
        self.status = status
        self.body = body


class PartialWriteError(ConnectorError):
    """A destination batch stopped early; `written` records were delivered."""

    def __init__(self, message: str, written: int):
        super().__init__(message)
        self.written = written


class Cancelled(ConnectorError):
    """A blocking call was interrupted by its cancel event."""

    pass


class BackoffRetry(ConnectorError):
    """Nothing to return right now; the host should back off and retry."""

    pass


class EmptyCycle(BackoffRetry):
    """A completed poll cycle produced zero records."""

    pass
