"""
Constrained-iteration guard shared by Sequence and AsyncSequence.

A constrained cursor wraps a one-shot cursor and allows exactly one
traversal. The first traversal attempt marks it consumed before any value
is pulled; every later attempt raises IllegalStateError.
"""

import logging

from .utils import IllegalStateError, is_async_iterator, resolve

logger = logging.getLogger(__name__)

MESSAGE = "attempted to iterate a constrained sequence more than once"


def _pull(cursor):
    """Drain a cursor that may only expose __next__."""
    while True:
        try:
            value = next(cursor)
        except StopIteration:
            return
        yield value


class _Guard:
    """Fresh -> Consumed state machine. The transition happens once."""

    def __init__(self, cursor):
        self._cursor = cursor
        self._consumed = False
        logger.debug(f"Created {type(self).__name__} over {type(cursor).__name__}")

    @property
    def consumed(self) -> bool:
        return self._consumed

    def _consume(self):
        if self._consumed:
            logger.warning(f"Refused second traversal of {type(self).__name__}")
            raise IllegalStateError(MESSAGE)
        self._consumed = True
        logger.debug(f"{type(self).__name__} consumed")


class ConstrainedCursor(_Guard):
    """Single-traversal wrapper around a synchronous cursor"""

    def __iter__(self):
        self._consume()
        return _pull(self._cursor)


class AsyncConstrainedCursor(_Guard):
    """
    Single-traversal wrapper around an asynchronous cursor, or around a
    synchronous cursor whose values may need to be awaited.
    """

    def __aiter__(self):
        self._consume()
        return self._drain()

    async def _drain(self):
        if not is_async_iterator(self._cursor):
            for value in _pull(self._cursor):
                yield await resolve(value)
            return
        try:
            while True:
                try:
                    value = await self._cursor.__anext__()
                except StopAsyncIteration:
                    return
                yield await resolve(value)
        finally:
            aclose = getattr(self._cursor, "aclose", None)
            if aclose is not None:
                await aclose()
