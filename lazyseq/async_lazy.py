"""
Asynchronous counterpart of lazyseq.lazy.Sequence.

Source values, and the results of every caller-supplied callback, may be
awaitables; each one is awaited in turn before the next value is pulled,
so values are always produced in source order and never resolved
concurrently.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from .guard import AsyncConstrainedCursor
from .models import JoinOptions, OpKind
from .utils import (
    closing,
    is_async_iterable,
    is_async_iterator,
    is_iterable,
    is_iterator,
    resolve,
    share,
    size_of,
    with_index,
)

logger = logging.getLogger(__name__)


async def _aiterate(source):
    """Iterate an async iterable or a plain iterable, awaiting each value."""
    if is_async_iterable(source):
        async with closing(source.__aiter__()) as values:
            async for value in values:
                yield await resolve(value)
    else:
        for value in source:
            yield await resolve(value)


# --------- producers (one per node kind) ----------

def _source(source, _):
    return _aiterate(source)


def _constrained(cursor, _):
    return cursor.__aiter__()


async def _generate(seed, step):
    current = await resolve(seed)
    yield current
    while True:
        current = await resolve(step(current))
        if current is None:
            return
        yield current


async def _map(source, transform):
    index = 0
    async with closing(source.__aiter__()) as values:
        async for value in values:
            yield await resolve(transform(value, index))
            index += 1


async def _filter(source, predicate):
    index = 0
    async with closing(source.__aiter__()) as values:
        async for value in values:
            if await resolve(predicate(value, index)):
                yield value
            index += 1


async def _drop(source, n):
    dropped = 0
    async with closing(source.__aiter__()) as values:
        async for value in values:
            if dropped < n:
                dropped += 1
                continue
            yield value


async def _take(source, n):
    if n <= 0:
        return
    taken = 0
    async with closing(source.__aiter__()) as values:
        async for value in values:
            yield value
            taken += 1
            if taken >= n:
                return


async def _drop_while(source, predicate):
    yielding = False
    index = 0
    async with closing(source.__aiter__()) as values:
        async for value in values:
            if not yielding and not await resolve(predicate(value, index)):
                yielding = True
            index += 1
            if yielding:
                yield value


async def _take_while(source, predicate):
    index = 0
    async with closing(source.__aiter__()) as values:
        async for value in values:
            if not await resolve(predicate(value, index)):
                return
            index += 1
            yield value


async def _flatten(source, _):
    async with closing(source.__aiter__()) as values:
        async for inner in values:
            async with closing(_aiterate(inner)) as inner_values:
                async for value in inner_values:
                    yield value


async def _flat_map(source, transform):
    index = 0
    async with closing(source.__aiter__()) as values:
        async for value in values:
            inner = await resolve(transform(value, index))
            index += 1
            async with closing(_aiterate(inner)) as items:
                async for item in items:
                    yield item


async def _concat(sources, _):
    for part in sources:
        async with closing(part.__aiter__()) as values:
            async for value in values:
                yield value


async def _chunk(source, size):
    bucket = []
    async with closing(source.__aiter__()) as values:
        async for value in values:
            bucket.append(value)
            if len(bucket) == size:
                yield tuple(bucket)
                bucket = []
    if bucket:
        yield tuple(bucket)


_PRODUCERS = {
    OpKind.SOURCE: _source,
    OpKind.CONSTRAINED: _constrained,
    OpKind.GENERATE: _generate,
    OpKind.MAP: _map,
    OpKind.FILTER: _filter,
    OpKind.DROP: _drop,
    OpKind.TAKE: _take,
    OpKind.DROP_WHILE: _drop_while,
    OpKind.TAKE_WHILE: _take_while,
    OpKind.FLATTEN: _flatten,
    OpKind.FLAT_MAP: _flat_map,
    OpKind.CONCAT: _concat,
    OpKind.CHUNK: _chunk,
}


class AsyncSequence:
    """
    A chainable, lazy sequence whose values are awaited as they are pulled.
    Intermediate operations are plain methods returning new nodes; terminal
    operations are coroutines.
    """
    tag = "AsyncSequence"

    def __init__(self, source, op: OpKind = OpKind.SOURCE, arg=None, size: Optional[int] = None):
        self._source = source
        self._op = OpKind(op)
        self._arg = arg
        self._size = size_of(source) if size is None else size

    # --------- factories ----------
    @classmethod
    def of(cls, *values) -> "AsyncSequence":
        """Sequence over the given values or awaitables; size is the number of arguments."""
        return cls(tuple(share(value) for value in values), size=len(values))

    @classmethod
    def from_(cls, source) -> "AsyncSequence":
        """
        Wrap an async iterable, or an iterable of values/awaitables. Cursors
        (sync or async) give an unsized sequence that can only be traversed once.
        """
        if is_async_iterator(source) or is_iterator(source):
            logger.debug(f"Wrapping one-shot cursor {type(source).__name__} in a constrained sequence")
            return cls(AsyncConstrainedCursor(source), OpKind.CONSTRAINED, size=-1)
        if not (is_async_iterable(source) or is_iterable(source)):
            raise TypeError(f"Cannot build an {cls.tag} from {type(source).__name__}")
        return cls(source)

    @classmethod
    def empty(cls) -> "AsyncSequence":
        return cls((), size=0)

    @classmethod
    def generate(cls, seed, step: Callable[[Any], Any]) -> "AsyncSequence":
        """
        Sequence of the resolved `seed`, then step(current) resolved each time,
        ending before the first None. `seed` and step results may be awaitables.
        """
        return cls(share(seed), OpKind.GENERATE, step, size=-1)

    # --------- accessors ----------
    @property
    def source(self):
        return self._source

    @property
    def kind(self) -> OpKind:
        return self._op

    def size(self) -> int:
        """Cached size hint. Never traverses; negative means unknown."""
        return self._size

    # --------- chainable operators (lazy) ----------
    def map(self, transform: Callable) -> "AsyncSequence":
        return self._with_op(OpKind.MAP, with_index(transform), self._size)

    def filter(self, predicate: Callable) -> "AsyncSequence":
        return self._with_op(OpKind.FILTER, with_index(predicate), -1)

    def drop(self, n: int) -> "AsyncSequence":
        n = max(0, int(n))
        size = max(0, self._size - n) if self._size >= 0 else -1
        return self._with_op(OpKind.DROP, n, size)

    def take(self, n: int) -> "AsyncSequence":
        n = max(0, int(n))
        size = min(n, self._size) if self._size >= 0 else -1
        return self._with_op(OpKind.TAKE, n, size)

    def drop_while(self, predicate: Callable) -> "AsyncSequence":
        return self._with_op(OpKind.DROP_WHILE, with_index(predicate), -1)

    def take_while(self, predicate: Callable) -> "AsyncSequence":
        return self._with_op(OpKind.TAKE_WHILE, with_index(predicate), -1)

    def flatten(self) -> "AsyncSequence":
        """Flatten one level; values may be async sequences, async iterables or iterables."""
        return self._with_op(OpKind.FLATTEN, None, -1)

    def flat_map(self, transform: Callable) -> "AsyncSequence":
        return self._with_op(OpKind.FLAT_MAP, with_index(transform), -1)

    def concat(self, other: "AsyncSequence") -> "AsyncSequence":
        if self._size >= 0 and other.size() >= 0:
            size = self._size + other.size()
        else:
            size = -1
        return type(self)((self, other), OpKind.CONCAT, size=size)

    def chunk(self, size: int) -> "AsyncSequence":
        size = int(size)
        if size < 1:
            raise ValueError("Chunk size must be >= 1")
        hint = -(-self._size // size) if self._size >= 0 else -1
        return self._with_op(OpKind.CHUNK, size, hint)

    def page(self, page_number: int, page_size: int) -> "AsyncSequence":
        """Get a specific page of values (1-indexed)"""
        if page_number < 1:
            raise ValueError("Page number must be >= 1")
        offset = (page_number - 1) * page_size
        return self.drop(offset).take(page_size)

    def constrain_once(self) -> "AsyncSequence":
        return type(self)(AsyncConstrainedCursor(self.__aiter__()), OpKind.CONSTRAINED, size=self._size)

    # --------- terminal operations ----------
    async def count(self, predicate: Optional[Callable] = None) -> int:
        predicate = with_index(predicate) if predicate is not None else None
        matches = 0
        index = 0
        async with self._values() as values:
            async for item in values:
                if predicate is None or await resolve(predicate(item, index)):
                    matches += 1
                index += 1
        return matches

    async def contains(self, value) -> bool:
        async with self._values() as values:
            async for item in values:
                if item is value or item == value:
                    return True
        return False

    async def contains_all(self, values) -> bool:
        """True if every one of `values` occurs in this sequence. Single traversal."""
        wanted = [value async for value in _aiterate(values)]
        if not wanted:
            return True
        async with self._values() as values:
            async for item in values:
                wanted = [value for value in wanted if not (item is value or item == value)]
                if not wanted:
                    return True
        return False

    async def element_at(self, index: int):
        if index < 0:
            return None
        position = 0
        async with self._values() as values:
            async for item in values:
                if position == index:
                    return item
                position += 1
        return None

    async def every(self, predicate: Callable) -> bool:
        predicate = with_index(predicate)
        index = 0
        async with self._values() as values:
            async for item in values:
                if not await resolve(predicate(item, index)):
                    return False
                index += 1
        return True

    async def some(self, predicate: Optional[Callable] = None) -> bool:
        if predicate is None:
            return not await self.is_empty()
        predicate = with_index(predicate)
        index = 0
        async with self._values() as values:
            async for item in values:
                if await resolve(predicate(item, index)):
                    return True
                index += 1
        return False

    async def find(self, predicate: Callable):
        predicate = with_index(predicate)
        index = 0
        async with self._values() as values:
            async for item in values:
                if await resolve(predicate(item, index)):
                    return item
                index += 1
        return None

    async def find_index(self, predicate: Callable) -> int:
        predicate = with_index(predicate)
        index = 0
        async with self._values() as values:
            async for item in values:
                if await resolve(predicate(item, index)):
                    return index
                index += 1
        return -1

    async def find_last(self, predicate: Callable):
        predicate = with_index(predicate)
        result = None
        index = 0
        async with self._values() as values:
            async for item in values:
                if await resolve(predicate(item, index)):
                    result = item
                index += 1
        return result

    async def find_last_index(self, predicate: Callable) -> int:
        predicate = with_index(predicate)
        result = -1
        index = 0
        async with self._values() as values:
            async for item in values:
                if await resolve(predicate(item, index)):
                    result = index
                index += 1
        return result

    async def first(self):
        async with self._values() as values:
            async for item in values:
                return item
        return None

    async def last(self):
        result = None
        async with self._values() as values:
            async for item in values:
                result = item
        return result

    async def is_empty(self) -> bool:
        async with self._values() as values:
            async for _ in values:
                return False
        return True

    async def fold(self, initial, operation: Callable):
        operation = with_index(operation, 2)
        result = initial
        index = 0
        async with self._values() as values:
            async for item in values:
                result = await resolve(operation(result, item, index))
                index += 1
        return result

    async def reduce(self, operation: Callable):
        """Left fold seeded with the first value; None for an empty sequence."""
        operation = with_index(operation, 2)
        async with self._values() as values:
            try:
                result = await values.__anext__()
            except StopAsyncIteration:
                return None
            index = 0
            async for item in values:
                result = await resolve(operation(result, item, index))
                index += 1
        return result

    async def sum(self, start=0):
        total = start
        async with self._values() as values:
            async for item in values:
                total += item
        return total

    async def for_each(self, action: Callable) -> None:
        action = with_index(action)
        index = 0
        async with self._values() as values:
            async for item in values:
                await resolve(action(item, index))
                index += 1

    async def index_of(self, value) -> int:
        index = 0
        async with self._values() as values:
            async for item in values:
                if item is value or item == value:
                    return index
                index += 1
        return -1

    async def last_index_of(self, value) -> int:
        result = -1
        index = 0
        async with self._values() as values:
            async for item in values:
                if item is value or item == value:
                    result = index
                index += 1
        return result

    async def group_by(self, key_selector: Callable) -> Dict[Any, List]:
        key_selector = with_index(key_selector)
        groups = {}
        index = 0
        async with self._values() as values:
            async for item in values:
                key = await resolve(key_selector(item, index))
                groups.setdefault(key, []).append(item)
                index += 1
        return groups

    async def join(self, options: Optional[JoinOptions] = None, **kwargs) -> str:
        """Async join(); `transform` may return an awaitable string. See Sequence.join."""
        if options is None:
            options = JoinOptions(**kwargs)
        parts = [options.prefix]
        count = 0
        async with self._values() as values:
            async for item in values:
                count += 1
                if count > 1:
                    parts.append(options.separator)
                if 0 <= options.limit < count:
                    break
                text = options.transform(item) if options.transform is not None else item
                parts.append(str(await resolve(text)))
        if 0 <= options.limit < count:
            parts.append(options.truncated)
        parts.append(options.postfix)
        return "".join(parts)

    async def to_list(self) -> List:
        async with self._values() as values:
            return [item async for item in values]

    # --------- protocol ----------
    def __aiter__(self):
        return _PRODUCERS[self._op](self._source, self._arg)

    def __str__(self):
        if self._size == 0:
            return f"{self.tag} (empty)"
        if self._size < 0:
            return f"{self.tag} (unknown)"
        return f"{self.tag} ({self._size})"

    def __repr__(self):
        return f"<{self.tag} {self._op.value} size={self._size}>"

    # --------- helpers ----------
    def _values(self):
        """Fresh cursor that is closed when the terminal operation finishes."""
        return closing(self.__aiter__())

    def _with_op(self, op: OpKind, arg, size: int) -> "AsyncSequence":
        return type(self)(self, op, arg, size)
