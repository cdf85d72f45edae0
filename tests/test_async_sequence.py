import asyncio

import pytest
from lazyseq import AsyncSequence, IllegalStateError, OpKind, Sequence


async def resolved(x, delay=0):
    """Coroutine resolving to x after yielding control to the event loop"""
    await asyncio.sleep(delay)
    return x


async def agen(*values):
    for value in values:
        await asyncio.sleep(0)
        yield value


class AsyncRange:
    """Re-iterable async source"""

    def __init__(self, n):
        self.n = n

    def __aiter__(self):
        return agen(*range(self.n))


class TestAsyncConstruction:
    """Test AsyncSequence factories"""

    @pytest.mark.asyncio
    async def test_of_awaits_values(self):
        """Test that of() accepts both awaitables and plain values"""
        seq = AsyncSequence.of(resolved(1), 2, resolved(3))
        assert seq.size() == 3
        assert await seq.to_list() == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_from_async_iterable_is_reiterable(self):
        """Test wrapping a re-iterable async source"""
        seq = AsyncSequence.from_(AsyncRange(4))
        assert seq.size() < 0
        assert await seq.to_list() == [0, 1, 2, 3]
        assert await seq.to_list() == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_from_list_is_sized(self):
        seq = AsyncSequence.from_([1, 2, 3])
        assert seq.size() == 3
        assert await seq.map(lambda x: x * 2).to_list() == [2, 4, 6]

    @pytest.mark.asyncio
    async def test_from_async_generator_is_constrained(self):
        """Test that an async cursor can only be traversed once"""
        seq = AsyncSequence.from_(agen(1, 2, 3))
        assert seq.kind is OpKind.CONSTRAINED
        assert await seq.to_list() == [1, 2, 3]

        with pytest.raises(IllegalStateError):
            await seq.to_list()

    @pytest.mark.asyncio
    async def test_from_sync_cursor_is_constrained(self):
        seq = AsyncSequence.from_(iter([resolved(1), 2]))
        assert await seq.first() == 1

        with pytest.raises(IllegalStateError):
            await seq.is_empty()

    @pytest.mark.asyncio
    async def test_empty(self):
        first, second = AsyncSequence.empty(), AsyncSequence.empty()
        assert first is not second
        assert first.size() == 0
        assert await first.to_list() == []
        assert await first.is_empty() is True

    @pytest.mark.asyncio
    async def test_generate(self):
        """Test generate with an awaitable seed and async step"""
        async def step(x):
            await asyncio.sleep(0)
            return None if x >= 10 else x + 1

        seq = AsyncSequence.generate(resolved(0), step)
        assert seq.size() < 0
        assert await seq.last() == 10

    @pytest.mark.asyncio
    async def test_generate_with_plain_values(self):
        seq = AsyncSequence.generate(0, lambda x: x + 1)
        assert await seq.take(20).join(limit=10) == "0, 1, 2, 3, 4, 5, 6, 7, 8, 9, ..."

    @pytest.mark.asyncio
    async def test_of_coroutines_survive_repeated_traversal(self):
        """Test that coroutine values are awaited once and shared by every traversal"""
        seq = AsyncSequence.of(resolved(1), resolved(2))
        assert await seq.count() == 2
        assert await seq.to_list() == [1, 2], "Second traversal should see the same values"
        assert await seq.map(lambda x: x * 10).to_list() == [10, 20]

    @pytest.mark.asyncio
    async def test_of_failing_coroutine_fails_every_traversal(self):
        async def fail():
            raise ValueError("no value")

        seq = AsyncSequence.of(1, fail())
        for _ in range(2):
            with pytest.raises(ValueError, match="no value"):
                await seq.to_list()
        assert await seq.first() == 1

    @pytest.mark.asyncio
    async def test_generate_coroutine_seed_is_reusable(self):
        seq = AsyncSequence.generate(resolved(1), lambda x: None if x >= 3 else x + 1)
        assert await seq.to_list() == [1, 2, 3]
        assert await seq.sum() == 6

    def test_from_rejects_non_iterables(self):
        with pytest.raises(TypeError):
            AsyncSequence.from_(42)


class TestAsyncLaziness:
    """Test laziness and ordering across suspension points"""

    @pytest.mark.asyncio
    async def test_no_work_before_terminal(self, tracked):
        calls, track = tracked
        seq = AsyncSequence.from_([1, 2, 3]).map(track).filter(lambda x: True).take(2)
        assert calls == []

        assert await seq.to_list() == [1, 2]
        assert calls == [1, 2], f"take(2) pulled too much: {calls}"

    @pytest.mark.asyncio
    async def test_find_short_circuits(self, tracked):
        calls, track = tracked
        found = await AsyncSequence.generate(0, lambda x: x + 1).map(track).find(lambda x: x == 3)
        assert found == 3
        assert calls == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_order_preserved_with_uneven_delays(self):
        """Test that slower values are not overtaken by faster ones"""
        delays = {1: 0.03, 2: 0.0, 3: 0.01}
        result = await AsyncSequence.of(1, 2, 3).map(lambda x: resolved(x, delays[x])).to_list()
        assert result == [1, 2, 3], f"Order not preserved: {result}"

    @pytest.mark.asyncio
    async def test_no_overlapping_resolution(self):
        """Test that one callback finishes before the next starts"""
        active = 0
        peak = 0

        async def slow(x):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.001)
            active -= 1
            return x

        await AsyncSequence.from_(range(5)).map(slow).filter(slow).to_list()
        assert peak == 1, f"Callbacks overlapped: peak {peak}"

    @pytest.mark.asyncio
    async def test_async_iteration_protocol(self):
        seq = AsyncSequence.of(1, 2, 3).map(lambda x: x * 10)
        assert [x async for x in seq] == [10, 20, 30]


class TestAsyncOperations:
    """Test the async operation set mirrors the synchronous one"""

    @pytest.mark.asyncio
    async def test_intermediate_operations(self):
        seq = AsyncSequence.from_(range(10))

        assert await seq.filter(lambda x: resolved(x % 2 == 0)).to_list() == [0, 2, 4, 6, 8]
        assert await seq.drop(7).to_list() == [7, 8, 9]
        assert await seq.take(2).to_list() == [0, 1]
        assert await seq.drop_while(lambda x: x < 8).to_list() == [8, 9]
        assert await seq.take_while(lambda x: resolved(x < 2)).to_list() == [0, 1]
        assert await seq.chunk(4).to_list() == [(0, 1, 2, 3), (4, 5, 6, 7), (8, 9)]
        assert await seq.page(2, 4).to_list() == [4, 5, 6, 7]
        assert await seq.map(lambda x, i: x * i).take(3).to_list() == [0, 1, 4]

    @pytest.mark.asyncio
    async def test_drop_while_yields_unconditionally_after_failure(self):
        result = await AsyncSequence.of(1, 5, 1).drop_while(lambda x: x < 3).to_list()
        assert result == [5, 1]

    @pytest.mark.asyncio
    async def test_flatten_and_flat_map(self):
        nested = AsyncSequence.of(AsyncSequence.of(1, 2), [3], AsyncRange(2), Sequence.of(4))
        assert await nested.flatten().to_list() == [1, 2, 3, 0, 1, 4]

        async def expand(x):
            return AsyncSequence.of(x, resolved(x * 10))

        assert await AsyncSequence.of(1, 2).flat_map(expand).to_list() == [1, 10, 2, 20]

    @pytest.mark.asyncio
    async def test_concat(self):
        seq = AsyncSequence.of(1, 2, 3).concat(AsyncSequence.from_([4, 5, 6]))
        assert seq.size() == 6
        assert await seq.to_list() == [1, 2, 3, 4, 5, 6]
        assert AsyncSequence.of(1).concat(AsyncSequence.from_(AsyncRange(2))).size() < 0

    @pytest.mark.asyncio
    async def test_constrain_once(self):
        once = AsyncSequence.from_([1, 2, 3]).constrain_once()
        assert once.size() == 3
        assert await once.count() == 3
        with pytest.raises(IllegalStateError):
            await once.count()

    @pytest.mark.asyncio
    async def test_terminal_operations(self):
        seq = AsyncSequence.from_([3, 1, 4, 1, 5])

        assert await seq.count() == 5
        assert await seq.count(lambda x: resolved(x == 1)) == 2
        assert await seq.contains(4) is True
        assert await seq.contains(9) is False
        assert await seq.contains_all([5, 3]) is True
        assert await seq.contains_all(agen(5, 9)) is False
        assert await seq.element_at(2) == 4
        assert await seq.element_at(10) is None
        assert await seq.element_at(-1) is None
        assert await seq.every(lambda x: x > 0) is True
        assert await seq.some() is True
        assert await seq.some(lambda x: x > 4) is True
        assert await seq.find(lambda x: x > 3) == 4
        assert await seq.find_index(lambda x: x > 3) == 2
        assert await seq.find_last(lambda x: x == 1) == 1
        assert await seq.find_last_index(lambda x: x == 1) == 3
        assert await seq.first() == 3
        assert await seq.last() == 5
        assert await seq.index_of(1) == 1
        assert await seq.last_index_of(1) == 3
        assert await seq.index_of(7) == -1
        assert await seq.sum() == 14
        assert await seq.fold(0, lambda acc, x: resolved(acc + x)) == 14
        assert await seq.reduce(lambda acc, x: max(acc, x)) == 5
        assert await AsyncSequence.empty().reduce(lambda acc, x: acc + x) is None

    @pytest.mark.asyncio
    async def test_for_each_and_group_by(self):
        seen = []

        async def record(x, i):
            seen.append((i, x))

        await AsyncSequence.of("a", "b").for_each(record)
        assert seen == [(0, "a"), (1, "b")]

        groups = await AsyncSequence.from_(range(6)).group_by(lambda x: resolved(x % 3))
        assert groups == {0: [0, 3], 1: [1, 4], 2: [2, 5]}

    @pytest.mark.asyncio
    async def test_join(self):
        seq = AsyncSequence.of(1, 2, 3)
        assert await seq.join() == "1, 2, 3"
        assert await seq.join(prefix="[", postfix="]", transform=lambda x: resolved(f"<{x}>")) == "[<1>, <2>, <3>]"
        assert await AsyncSequence.empty().join(prefix="(", postfix=")") == "()"

    @pytest.mark.asyncio
    async def test_join_stringifies_transform_results(self):
        """Test transforms returning non-string values, plain or awaited"""
        assert await AsyncSequence.of(1, 2).join(transform=lambda x: x * 2) == "2, 4"
        assert await AsyncSequence.of(1, 2).join(transform=lambda x: resolved(x * 3)) == "3, 6"

    @pytest.mark.asyncio
    async def test_callback_errors_propagate(self):
        def explode(x):
            raise ValueError(f"bad {x}")

        with pytest.raises(ValueError, match="bad 1"):
            await AsyncSequence.of(1, 2).map(explode).to_list()

    def test_string_forms_use_size_hint(self):
        assert str(AsyncSequence.empty()) == "AsyncSequence (empty)"
        assert str(AsyncSequence.of(1, 2)) == "AsyncSequence (2)"
        assert str(AsyncSequence.of(1, 2).filter(bool)) == "AsyncSequence (unknown)"
        assert AsyncSequence.of(1).tag == "AsyncSequence"


def closing_source(closed, *values):
    """Async generator over values that records when it is closed"""
    async def source():
        try:
            for value in values:
                await asyncio.sleep(0)
                yield value
        finally:
            closed.append(True)
    return source()


class ClosingRange:
    """Re-iterable async source whose cursors record when they are closed"""

    def __init__(self, n, closed):
        self.n = n
        self.closed = closed

    def __aiter__(self):
        return closing_source(self.closed, *range(self.n))


class TestAsyncCleanup:
    """Test that upstream cursors are closed when a traversal stops early"""

    @pytest.mark.asyncio
    async def test_first_closes_generator_source(self):
        closed = []
        seq = AsyncSequence.from_(closing_source(closed, 1, 2, 3)).map(lambda x: x * 2)
        assert await seq.first() == 2
        assert closed == [True], "Source should be closed as soon as first() returns"

    @pytest.mark.asyncio
    async def test_short_circuiting_terminals_close_source(self):
        """Test find, element_at, some and is_empty on a re-iterable source"""
        closed = []
        seq = AsyncSequence.from_(ClosingRange(10, closed)).filter(lambda x: x % 2 == 0)
        assert await seq.find(lambda x: x > 2) == 4
        assert await seq.element_at(1) == 2
        assert await seq.some(lambda x: x == 0) is True
        assert await seq.is_empty() is False
        assert closed == [True] * 4, f"Each traversal should close its cursor, got {closed}"

    @pytest.mark.asyncio
    async def test_take_closes_source(self):
        closed = []
        seq = AsyncSequence.from_(ClosingRange(100, closed))
        assert await seq.take(3).to_list() == [0, 1, 2]
        assert closed == [True]

        assert await seq.drop(1).take_while(lambda x: x < 3).to_list() == [1, 2]
        assert closed == [True, True]

    @pytest.mark.asyncio
    async def test_nested_sources_are_closed(self):
        """Test flat_map and concat close the cursors they opened"""
        outer, inner, tail = [], [], []
        seq = AsyncSequence.from_(ClosingRange(5, outer)).flat_map(lambda x: ClosingRange(3, inner))
        assert await seq.first() == 0
        assert outer == [True] and inner == [True]

        both = AsyncSequence.from_(ClosingRange(2, outer)).concat(AsyncSequence.from_(ClosingRange(5, tail)))
        assert await both.find(lambda x: x == 1) == 1
        assert outer == [True, True] and tail == []
        assert await both.element_at(3) == 1
        assert tail == [True]

    @pytest.mark.asyncio
    async def test_reduce_closes_source(self):
        closed = []
        seq = AsyncSequence.from_(ClosingRange(4, closed))
        assert await seq.reduce(lambda a, b: a + b) == 6
        assert closed == [True]
