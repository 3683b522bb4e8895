"""
RestrictedPython sandbox for user scripts.

compile_script() turns script source into a code object once; each context
then runs that code in its own globals built by build_restricted_globals().
"""

import operator

from RestrictedPython import compile_restricted, limited_builtins, safe_builtins
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)
from RestrictedPython.PrintCollector import PrintCollector

from ..engine.errors import InitializationError

# Pure builtins scripts commonly need on top of safe_builtins
_EXTRA_BUILTINS = {
    "all": all,
    "any": any,
    "dict": dict,
    "enumerate": enumerate,
    "list": list,
    "max": max,
    "min": min,
    "set": set,
    "sorted": sorted,
    "sum": sum,
}

_INPLACE_OPS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "|=": operator.ior,
    "&=": operator.iand,
}


def _inplacevar(op, x, y):
    try:
        fn = _INPLACE_OPS[op]
    except KeyError:
        raise SyntaxError(f"augmented assignment {op!r} is not allowed") from None
    return fn(x, y)


def _apply(f, *args, **kwargs):
    return f(*args, **kwargs)


def compile_script(source: str, filename: str = "<script>"):
    """Compile restricted source. Raises InitializationError on any error."""
    try:
        return compile_restricted(source, filename, "exec")
    except SyntaxError as e:
        raise InitializationError(f"could not compile {filename}: {e}") from e


def build_restricted_globals(bindings: dict, name: str = "script") -> dict:
    """
    Fresh globals for one script context.

    Every call returns a new dict with a new builtins mapping, so nothing a
    script does to its globals can reach another context.
    """
    builtins = dict(safe_builtins)
    builtins.update(limited_builtins)
    builtins.update(_EXTRA_BUILTINS)

    return {
        "__builtins__": builtins,
        "__name__": name,
        "_getattr_": safer_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_write_": full_write_guard,
        "_inplacevar_": _inplacevar,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_apply_": _apply,
        "_print_": PrintCollector,
        **bindings,
    }
