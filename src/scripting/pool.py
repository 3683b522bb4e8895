"""
Pool of script contexts.

Script code is compiled once per pool. Each context runs it into its own
globals, so contexts never share mutable script state, and a context is
loaned to exactly one caller at a time.
"""

import logging
import threading
from collections import deque
from contextlib import contextmanager

from ..engine.errors import InitializationError
from .sandbox import build_restricted_globals, compile_script
from .shims import SCRIPT_BINDINGS, ScriptLogger

logger = logging.getLogger(__name__)


class ScriptContext:
    """One executed copy of a script plus its exported function."""

    def __init__(self, code, export_name: str, filename: str):
        self.code = code
        self.export_name = export_name
        self.filename = filename
        self._load()

    def _load(self):
        # Functions close over this dict, default arguments and closure cells
        # included, so a reset runs the compiled code again into a new one
        self.globals = build_restricted_globals(SCRIPT_BINDINGS, name=self.export_name)
        self.globals["logger"] = ScriptLogger(script_logger(self.export_name))

        try:
            exec(self.code, self.globals)
        except Exception as e:
            raise InitializationError(
                f"error running {self.filename}: {type(e).__name__}: {e}"
            ) from e

        fn = self.globals.get(self.export_name)
        if fn is None:
            raise InitializationError(
                f"{self.filename} does not define {self.export_name}"
            )
        if not callable(fn):
            raise InitializationError(
                f"{self.export_name} in {self.filename} is not callable "
                f"({type(fn).__name__})"
            )
        self.function = fn

    def bind_logger(self, log: logging.Logger):
        self.globals["logger"] = ScriptLogger(log)

    def call(self, *args):
        return self.function(*args)

    def reset(self):
        self._load()


def script_logger(export_name: str) -> logging.Logger:
    return logging.getLogger(f"scripts.{export_name}")


class ContextPool:
    """
    Thread-safe pool of ScriptContexts for one script export.

    The first context is built eagerly so a broken script fails when the
    pool is created. Later contexts are created on demand when every
    existing one is on loan.

    Usage:
        pool = ContextPool(source, "parseResponse", "parse.py")
        with pool.loan() as ctx:
            result = ctx.call(body)
    """

    def __init__(self, source: str, export_name: str, filename: str = "<script>"):
        self.export_name = export_name
        self.filename = filename
        self.code = compile_script(source, filename)

        self._idle: deque[ScriptContext] = deque()
        self._lock = threading.Lock()
        self.created = 0

        self._idle.append(self._new_context())

    def _new_context(self) -> ScriptContext:
        ctx = ScriptContext(self.code, self.export_name, self.filename)
        with self._lock:
            self.created += 1
            count = self.created
        logger.debug(f"Created script context #{count} for {self.export_name}")
        return ctx

    def acquire(self, log: logging.Logger | None = None) -> ScriptContext:
        with self._lock:
            ctx = self._idle.pop() if self._idle else None
        if ctx is None:
            ctx = self._new_context()
        ctx.bind_logger(log or script_logger(self.export_name))
        return ctx

    def release(self, ctx: ScriptContext):
        try:
            ctx.reset()
        except InitializationError as e:
            logger.warning(f"Dropping script context for {self.export_name}: {e}")
            return
        with self._lock:
            self._idle.append(ctx)

    @contextmanager
    def loan(self, log: logging.Logger | None = None):
        ctx = self.acquire(log)
        try:
            yield ctx
        finally:
            self.release(ctx)

    @property
    def idle(self) -> int:
        with self._lock:
            return len(self._idle)
