import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from .guard import ConstrainedCursor
from .models import JoinOptions, OpKind
from .utils import is_iterable, is_iterator, size_of, with_index

logger = logging.getLogger(__name__)

_MISSING = object()


# --------- producers (one per node kind) ----------
# Each takes the node's source and captured argument and returns a fresh
# cursor. Nothing is pulled from the source until the cursor is advanced.

def _source(source, _):
    return iter(source)


def _generate(seed, step):
    current = seed
    yield current
    while True:
        current = step(current)
        if current is None:
            return
        yield current


def _map(source, transform):
    for index, value in enumerate(source):
        yield transform(value, index)


def _filter(source, predicate):
    for index, value in enumerate(source):
        if predicate(value, index):
            yield value


def _drop(source, n):
    dropped = 0
    for value in source:
        if dropped < n:
            dropped += 1
            continue
        yield value


def _take(source, n):
    if n <= 0:
        return
    taken = 0
    for value in source:
        yield value
        taken += 1
        if taken >= n:
            return


def _drop_while(source, predicate):
    yielding = False
    for index, value in enumerate(source):
        if not yielding and not predicate(value, index):
            yielding = True
        if yielding:
            yield value


def _take_while(source, predicate):
    for index, value in enumerate(source):
        if not predicate(value, index):
            return
        yield value


def _flatten(source, _):
    for inner in source:
        yield from inner


def _flat_map(source, transform):
    for index, value in enumerate(source):
        yield from transform(value, index)


def _concat(sources, _):
    first, second = sources
    yield from first
    yield from second


def _chunk(source, size):
    bucket = []
    for value in source:
        bucket.append(value)
        if len(bucket) == size:
            yield tuple(bucket)
            bucket = []
    if bucket:
        yield tuple(bucket)


_PRODUCERS = {
    OpKind.SOURCE: _source,
    OpKind.CONSTRAINED: _source,
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


def _count_arg(n) -> int:
    return max(0, int(n))


class Sequence:
    """
    A chainable, lazy sequence. Each intermediate operation returns a new
    node wrapping this one; values are only computed when a terminal
    operation (or plain iteration) pulls them, one at a time, in order.

    Build sequences with the factories (of, from_, empty, generate) rather
    than the constructor.
    """
    tag = "Sequence"

    def __init__(self, source, op: OpKind = OpKind.SOURCE, arg=None, size: Optional[int] = None):
        self._source = source
        self._op = OpKind(op)
        self._arg = arg
        # size hint: fixed for the node's lifetime, negative when unknown
        self._size = size_of(source) if size is None else size

    # --------- factories ----------
    @classmethod
    def of(cls, *values) -> "Sequence":
        """Sequence over the given values; size is the number of values."""
        return cls(values, size=len(values))

    @classmethod
    def from_(cls, source) -> "Sequence":
        """
        Wrap an iterable or a cursor. Iterables keep their length (or size)
        as the size hint; cursors give an unsized sequence that can only be
        traversed once.
        """
        if is_iterator(source):
            logger.debug(f"Wrapping one-shot cursor {type(source).__name__} in a constrained sequence")
            return cls(ConstrainedCursor(source), OpKind.CONSTRAINED, size=-1)
        if not is_iterable(source):
            raise TypeError(f"Cannot build a {cls.tag} from {type(source).__name__}")
        return cls(source)

    @classmethod
    def empty(cls) -> "Sequence":
        return cls((), size=0)

    @classmethod
    def generate(cls, seed, step: Callable[[Any], Any]) -> "Sequence":
        """
        Sequence of `seed`, step(seed), step(step(seed)), ... ending before
        the first None returned by `step`. Unbounded if step never returns None.
        """
        return cls(seed, OpKind.GENERATE, step, size=-1)

    # --------- accessors ----------
    @property
    def source(self):
        """Upstream of this node: another Sequence or the wrapped value."""
        return self._source

    @property
    def kind(self) -> OpKind:
        return self._op

    def size(self) -> int:
        """Cached size hint. Never traverses; negative means unknown."""
        return self._size

    # --------- chainable operators (lazy) ----------
    def map(self, transform: Callable) -> "Sequence":
        return self._with_op(OpKind.MAP, with_index(transform), self._size)

    def filter(self, predicate: Callable) -> "Sequence":
        return self._with_op(OpKind.FILTER, with_index(predicate), -1)

    def drop(self, n: int) -> "Sequence":
        n = _count_arg(n)
        size = max(0, self._size - n) if self._size >= 0 else -1
        return self._with_op(OpKind.DROP, n, size)

    def take(self, n: int) -> "Sequence":
        n = _count_arg(n)
        size = min(n, self._size) if self._size >= 0 else -1
        return self._with_op(OpKind.TAKE, n, size)

    def drop_while(self, predicate: Callable) -> "Sequence":
        return self._with_op(OpKind.DROP_WHILE, with_index(predicate), -1)

    def take_while(self, predicate: Callable) -> "Sequence":
        return self._with_op(OpKind.TAKE_WHILE, with_index(predicate), -1)

    def flatten(self) -> "Sequence":
        """Flatten one level; every value of this sequence must be iterable."""
        return self._with_op(OpKind.FLATTEN, None, -1)

    def flat_map(self, transform: Callable) -> "Sequence":
        return self._with_op(OpKind.FLAT_MAP, with_index(transform), -1)

    def concat(self, other: "Sequence") -> "Sequence":
        """All values of this sequence followed by all values of `other`."""
        if self._size >= 0 and other.size() >= 0:
            size = self._size + other.size()
        else:
            size = -1
        return type(self)((self, other), OpKind.CONCAT, size=size)

    def chunk(self, size: int) -> "Sequence":
        """Group consecutive values into tuples of `size`; the last may be shorter."""
        size = int(size)
        if size < 1:
            raise ValueError("Chunk size must be >= 1")
        hint = -(-self._size // size) if self._size >= 0 else -1
        return self._with_op(OpKind.CHUNK, size, hint)

    def page(self, page_number: int, page_size: int) -> "Sequence":
        """Get a specific page of values (1-indexed)"""
        if page_number < 1:
            raise ValueError("Page number must be >= 1")
        offset = (page_number - 1) * page_size
        return self.drop(offset).take(page_size)

    def constrain_once(self) -> "Sequence":
        """Wrap the current cursor of this sequence so it can be traversed only once."""
        return type(self)(ConstrainedCursor(iter(self)), OpKind.CONSTRAINED, size=self._size)

    # --------- terminal operations ----------
    def count(self, predicate: Optional[Callable] = None) -> int:
        if predicate is None:
            return sum(1 for _ in self)
        predicate = with_index(predicate)
        matches = 0
        for index, item in enumerate(self):
            if predicate(item, index):
                matches += 1
        return matches

    def contains(self, value) -> bool:
        for item in self:
            if item is value or item == value:
                return True
        return False

    def contains_all(self, values: Iterable) -> bool:
        """True if every one of `values` occurs in this sequence. Single traversal."""
        wanted = list(values)
        if not wanted:
            return True
        for item in self:
            wanted = [value for value in wanted if not (item is value or item == value)]
            if not wanted:
                return True
        return False

    def element_at(self, index: int):
        """Value at `index`, or None if out of bounds. O(n)."""
        if index < 0:
            return None
        for position, item in enumerate(self):
            if position == index:
                return item
        return None

    def every(self, predicate: Callable) -> bool:
        predicate = with_index(predicate)
        for index, item in enumerate(self):
            if not predicate(item, index):
                return False
        return True

    def some(self, predicate: Optional[Callable] = None) -> bool:
        """Any value matching `predicate`; without a predicate, whether any value exists."""
        if predicate is None:
            return not self.is_empty()
        predicate = with_index(predicate)
        for index, item in enumerate(self):
            if predicate(item, index):
                return True
        return False

    def find(self, predicate: Callable):
        predicate = with_index(predicate)
        for index, item in enumerate(self):
            if predicate(item, index):
                return item
        return None

    def find_index(self, predicate: Callable) -> int:
        predicate = with_index(predicate)
        for index, item in enumerate(self):
            if predicate(item, index):
                return index
        return -1

    def find_last(self, predicate: Callable):
        predicate = with_index(predicate)
        result = None
        for index, item in enumerate(self):
            if predicate(item, index):
                result = item
        return result

    def find_last_index(self, predicate: Callable) -> int:
        predicate = with_index(predicate)
        result = -1
        for index, item in enumerate(self):
            if predicate(item, index):
                result = index
        return result

    def first(self):
        """Return the first value, or None if empty. Safe on unbounded sequences."""
        for item in self:
            return item
        return None

    def last(self):
        result = None
        for item in self:
            result = item
        return result

    def is_empty(self) -> bool:
        for _ in self:
            return False
        return True

    def fold(self, initial, operation: Callable):
        """Left fold of operation(accumulator, value[, index]) starting from `initial`."""
        operation = with_index(operation, 2)
        result = initial
        for index, item in enumerate(self):
            result = operation(result, item, index)
        return result

    def reduce(self, operation: Callable):
        """Left fold seeded with the first value; None for an empty sequence."""
        iterator = iter(self)
        result = next(iterator, _MISSING)
        if result is _MISSING:
            return None
        operation = with_index(operation, 2)
        for index, item in enumerate(iterator):
            result = operation(result, item, index)
        return result

    def sum(self, start=0):
        """Return the sum of all values"""
        total = start
        for item in self:
            total += item
        return total

    def for_each(self, action: Callable) -> None:
        action = with_index(action)
        for index, item in enumerate(self):
            action(item, index)

    def index_of(self, value) -> int:
        for index, item in enumerate(self):
            if item is value or item == value:
                return index
        return -1

    def last_index_of(self, value) -> int:
        result = -1
        for index, item in enumerate(self):
            if item is value or item == value:
                result = index
        return result

    def group_by(self, key_selector: Callable) -> Dict[Any, List]:
        """Group values by key_selector(value), keeping encounter order within each group"""
        key_selector = with_index(key_selector)
        groups = {}
        for index, item in enumerate(self):
            groups.setdefault(key_selector(item, index), []).append(item)
        return groups

    def join(self, options: Optional[JoinOptions] = None, **kwargs) -> str:
        """
        Render the values as prefix + v1 + separator + v2 ... + postfix.
        With a non-negative limit, stops after `limit` values and appends
        the truncation marker if more remained. Accepts a JoinOptions or its
        fields as keyword arguments.
        """
        if options is None:
            options = JoinOptions(**kwargs)
        parts = [options.prefix]
        count = 0
        for item in self:
            count += 1
            if count > 1:
                parts.append(options.separator)
            if 0 <= options.limit < count:
                break
            parts.append(options.render(item))
        if 0 <= options.limit < count:
            parts.append(options.truncated)
        parts.append(options.postfix)
        return "".join(parts)

    def to_list(self) -> List:
        return list(self)

    # --------- protocol ----------
    def __iter__(self):
        return _PRODUCERS[self._op](self._source, self._arg)

    def __str__(self):
        # reads the size hint only, a display must never consume a one-shot source
        if self._size == 0:
            return f"{self.tag} (empty)"
        if self._size < 0:
            return f"{self.tag} (unknown)"
        return f"{self.tag} ({self._size})"

    def __repr__(self):
        return f"<{self.tag} {self._op.value} size={self._size}>"

    # --------- helpers ----------
    def _with_op(self, op: OpKind, arg, size: int) -> "Sequence":
        return type(self)(self, op, arg, size)
