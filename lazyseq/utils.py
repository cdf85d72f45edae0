"""
Utility functions for lazyseq

Capability probes used by the sequence factories, the helpers that adapt
caller-supplied callbacks, and logging setup.
"""

import inspect
import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

from .models import LoggingSettings


class IllegalStateError(RuntimeError):
    """Raised when a constrained sequence is traversed more than once."""
    pass


# ---------- Capability probes ----------

def is_iterable(value: Any) -> bool:
    """True if `value` can produce a cursor over its values."""
    return callable(getattr(value, "__iter__", None))


def is_async_iterable(value: Any) -> bool:
    """True if `value` can produce an asynchronous cursor over its values."""
    return callable(getattr(value, "__aiter__", None))


def is_iterator(value: Any) -> bool:
    """True if `value` already is a cursor (exposes a next-pull method)."""
    return callable(getattr(value, "__next__", None))


def is_async_iterator(value: Any) -> bool:
    return callable(getattr(value, "__anext__", None))


def _numeric_attribute(value: Any, name: str) -> Optional[int]:
    attr = getattr(value, name, None)
    if isinstance(attr, bool) or not isinstance(attr, int):
        return None
    return attr


def is_lengthed(value: Any) -> bool:
    """True if `value` exposes a numeric `length` attribute or supports len()."""
    if _numeric_attribute(value, "length") is not None:
        return True
    try:
        len(value)
    except TypeError:
        return False
    return True


def is_sized(value: Any) -> bool:
    """True if `value` exposes a numeric `size` attribute."""
    return _numeric_attribute(value, "size") is not None


def size_of(value: Any) -> int:
    """
    Known element count of `value`: its length first, then its size.
    Negative when neither is available.
    """
    if is_lengthed(value):
        length = _numeric_attribute(value, "length")
        return length if length is not None else len(value)
    if is_sized(value):
        return value.size
    return -1


# ---------- Callback adaptation ----------

def accepts_index(fn: Callable, positional: int = 1) -> bool:
    """
    True if `fn` declares more required positional parameters than
    `positional`, i.e. it wants the running index as a trailing argument.
    """
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return False

    required = 0
    for param in signature.parameters.values():
        if param.kind not in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            continue
        if param.default is param.empty:
            required += 1
    return required > positional


def with_index(fn: Callable, positional: int = 1) -> Callable:
    """
    Return a callable always invoked as fn(*args, index). If `fn` does not
    take the index, the wrapper drops it.
    """
    if accepts_index(fn, positional):
        return fn

    def call_without_index(*args):
        return fn(*args[:positional])

    return call_without_index


async def resolve(value: Any) -> Any:
    """Await `value` if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


class SharedAwaitable:
    """
    Awaitable that settles its wrapped awaitable on first use and hands the
    same outcome to every later await, like a resolved promise.
    """

    def __init__(self, awaitable):
        self._awaitable = awaitable
        self._settled = False
        self._result = None
        self._error = None

    def __await__(self):
        if not self._settled:
            try:
                self._result = yield from self._awaitable.__await__()
            except Exception as e:
                self._error = e
            self._settled = True
            self._awaitable = None
        if self._error is not None:
            raise self._error
        return self._result


def share(value: Any) -> Any:
    """Wrap coroutine objects so they can be awaited on every traversal."""
    if inspect.iscoroutine(value):
        return SharedAwaitable(value)
    return value


@asynccontextmanager
async def closing(cursor):
    """Close an async cursor on exit, if it can be closed."""
    try:
        yield cursor
    finally:
        aclose = getattr(cursor, "aclose", None)
        if aclose is not None:
            await aclose()


# ---------- Logging ----------

def setup_logging(settings: Optional[LoggingSettings] = None) -> logging.Logger:
    """Setup logging for applications and tests using lazyseq"""
    settings = settings or LoggingSettings.from_env()
    logging.basicConfig(
        level=settings.level,
        format=settings.format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    root = logging.getLogger("lazyseq")
    root.setLevel(settings.level)
    return root
