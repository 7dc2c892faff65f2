"""Tests for async selectors — futures, coroutines, streams and suspension."""

import asyncio

import pytest

from recoilx import (
    PENDING,
    EventStream,
    RecoilxError,
    StateRoot,
    Suspend,
    atom,
    selector,
)
from recoilx.resolve import INITIAL_ERROR, RECOMPUTE_ERROR


async def _settle(rounds=5):
    for _ in range(rounds):
        await asyncio.sleep(0)


class TestFutures:
    def test_pending_then_resolved(self):
        async def scenario():
            future = asyncio.get_running_loop().create_future()
            delayed = selector(lambda access: future)
            usage = StateRoot().use(delayed)
            assert usage.value is PENDING
            assert usage.state.pending

            future.set_result("delayed")
            await _settle()
            assert usage.value == "delayed"

        asyncio.run(scenario())

    def test_initial_value_shown_while_pending(self):
        async def scenario():
            future = asyncio.get_running_loop().create_future()
            delayed = selector(lambda access: future, initial_value="loading")
            usage = StateRoot().use(delayed)
            assert usage.value == "loading"
            future.set_result("ready")
            await _settle()
            assert usage.value == "ready"

        asyncio.run(scenario())

    def test_no_flicker_on_recompute(self):
        async def scenario():
            loop = asyncio.get_running_loop()
            base = atom(1)
            futures = {}

            def read(access):
                n = access.get(base)
                futures[n] = loop.create_future()
                return futures[n]

            root = StateRoot()
            usage = root.use(selector(read))
            futures[1].set_result(10)
            await _settle()
            assert usage.value == 10

            seen = []
            usage.subscribe(seen.append)
            root.use(base).dispatch(2)
            assert usage.value == 10

            futures[2].set_result(20)
            await _settle()
            assert usage.value == 20
            assert seen == [20]

        asyncio.run(scenario())

    def test_stale_result_ignored(self):
        async def scenario():
            loop = asyncio.get_running_loop()
            base = atom(1)
            futures = {}

            def read(access):
                n = access.get(base)
                futures[n] = loop.create_future()
                return futures[n]

            root = StateRoot()
            usage = root.use(selector(read))
            base_usage = root.use(base)
            base_usage.dispatch(2)
            base_usage.dispatch(3)

            futures[3].set_result("newest")
            futures[2].set_result("stale")
            futures[1].set_result("oldest")
            await _settle()
            assert usage.value == "newest"

        asyncio.run(scenario())

    def test_plain_value_supersedes_in_flight_future(self):
        async def scenario():
            loop = asyncio.get_running_loop()
            base = atom(0)
            slow = loop.create_future()
            picked = selector(lambda access: slow if access.get(base) == 0 else "sync")

            root = StateRoot()
            usage = root.use(picked)
            root.use(base).dispatch(1)
            assert usage.value == "sync"

            slow.set_result("late")
            await _settle()
            assert usage.value == "sync"

        asyncio.run(scenario())

    def test_rejection_reported(self):
        async def scenario():
            errors = []
            future = asyncio.get_running_loop().create_future()
            usage = StateRoot(report=errors.append).use(selector(lambda access: future))
            future.set_exception(ValueError("fetch failed"))
            await _settle()
            assert usage.value is PENDING
            assert [str(e) for e in errors] == ["fetch failed"]

        asyncio.run(scenario())

    def test_atom_holding_future_read_by_selector(self):
        async def scenario():
            future = asyncio.get_running_loop().create_future()
            holder = atom(future)
            unwrapped = selector(lambda access: access.get(holder))
            usage = StateRoot().use(unwrapped)
            assert usage.value is PENDING
            future.set_result("delayed")
            await _settle()
            assert usage.value == "delayed"

        asyncio.run(scenario())

    def test_async_selector_resumes_from_sleep(self):
        async def scenario():
            loop = asyncio.get_running_loop()
            futures = []

            def read(access):
                futures.append(loop.create_future())
                return futures[-1]

            delayed = selector(read)
            root = StateRoot()
            usage = root.use(delayed)
            futures[0].set_result("first")
            await _settle()
            usage.release()

            again = root.use(delayed)
            assert again.value == "first"
            futures[1].set_result("second")
            await _settle()
            assert again.value == "second"

        asyncio.run(scenario())

    def test_pending_value_not_remembered(self):
        async def scenario():
            future = asyncio.get_running_loop().create_future()
            delayed = selector(lambda access: future)
            root = StateRoot()
            root.use(delayed).release()
            assert delayed.key not in root.sleep
            future.cancel()

        asyncio.run(scenario())

    def test_result_after_teardown_ignored(self):
        async def scenario():
            future = asyncio.get_running_loop().create_future()
            delayed = selector(lambda access: future)
            root = StateRoot()
            usage = root.use(delayed)
            state = usage.state
            usage.release()
            future.set_result("late")
            await _settle()
            assert state.value is PENDING

        asyncio.run(scenario())


class TestCoroutines:
    def test_coroutine_read(self):
        async def scenario():
            base = atom(2)

            async def read(access):
                await asyncio.sleep(0)
                return access.get(base) * 10

            root = StateRoot()
            usage = root.use(selector(read))
            assert usage.value is PENDING
            await _settle()
            assert usage.value == 20

        asyncio.run(scenario())

    def test_reads_after_await_are_tracked(self):
        async def scenario():
            gate = asyncio.get_running_loop().create_future()
            a = atom(1)
            b = atom(10)

            async def read(access):
                x = access.get(a)
                await gate
                return x + access.get(b)

            total = selector(read)
            root = StateRoot()
            usage = root.use(total)
            gate.set_result(None)
            await _settle()
            assert usage.value == 11
            assert set(root.state_of(total).dependencies) == {a.key, b.key}

            root.use(b).dispatch(20)
            await _settle()
            assert usage.value == 21

        asyncio.run(scenario())

    def test_coroutine_error_reported_with_initial_tag(self, caplog):
        async def scenario():
            async def read(access):
                raise KeyError("missing")

            errors = []
            usage = StateRoot(report=errors.append).use(selector(read))
            with caplog.at_level("DEBUG", logger="recoilx.errors"):
                await _settle()
            assert usage.value is PENDING
            assert isinstance(errors[0], KeyError)
            assert INITIAL_ERROR in caplog.text

        asyncio.run(scenario())

    def test_teardown_while_running(self):
        async def scenario():
            gate = asyncio.get_running_loop().create_future()
            base = atom(1)

            async def read(access):
                await gate
                return access.get(base)

            errors = []
            root = StateRoot(report=errors.append)
            root.use(selector(read)).release()
            gate.set_result(None)
            await _settle()
            assert len(root) == 0
            assert errors == []

        asyncio.run(scenario())


class TestSuspension:
    def test_read_raises_suspend_until_ready(self):
        async def scenario():
            future = asyncio.get_running_loop().create_future()
            usage = StateRoot().use(selector(lambda access: future, debug_label="slow"))

            with pytest.raises(Suspend) as first:
                usage.read()
            with pytest.raises(Suspend) as second:
                usage.read()
            assert first.value.future is second.value.future
            assert "slow" in str(first.value)

            future.set_result("ready")
            assert await first.value.future == "ready"
            assert usage.read() == "ready"

        asyncio.run(scenario())

    def test_wait(self):
        async def scenario():
            future = asyncio.get_running_loop().create_future()
            usage = StateRoot().use(selector(lambda access: future))
            waiter = asyncio.ensure_future(usage.wait())
            await _settle()
            assert not waiter.done()
            future.set_result(42)
            assert await waiter == 42
            assert await usage.wait() == 42

        asyncio.run(scenario())

    def test_cancelled_waiter_does_not_break_others(self):
        async def scenario():
            future = asyncio.get_running_loop().create_future()
            usage = StateRoot().use(selector(lambda access: future))
            first = asyncio.ensure_future(usage.wait())
            second = asyncio.ensure_future(usage.wait())
            await _settle()
            first.cancel()
            future.set_result("ok")
            assert await second == "ok"

        asyncio.run(scenario())

    def test_suspension_cancelled_on_teardown(self):
        async def scenario():
            future = asyncio.get_running_loop().create_future()
            usage = StateRoot().use(selector(lambda access: future))
            with pytest.raises(Suspend) as suspended:
                usage.read()
            waiter = asyncio.ensure_future(usage.wait())
            await _settle()

            usage.release()
            assert suspended.value.future.cancelled()
            with pytest.raises(asyncio.CancelledError):
                await waiter
            future.cancel()

        asyncio.run(scenario())

    def test_sync_value_never_suspends(self):
        usage = StateRoot().use(atom("now"))
        assert usage.read() == "now"


class TestStreams:
    def test_stream_selector(self):
        stream = EventStream()
        root = StateRoot()
        usage = root.use(selector(lambda access: stream))
        assert usage.value is PENDING
        assert stream.subscriber_count == 1

        stream.emit("first")
        assert usage.value == "first"
        stream.emit("second")
        assert usage.value == "second"

    def test_subscription_removed_on_release(self):
        stream = EventStream()
        usage = StateRoot().use(selector(lambda access: stream))
        usage.release()
        assert stream.subscriber_count == 0

    def test_new_stream_replaces_previous(self):
        base = atom(1)
        streams = {1: EventStream(), 2: EventStream()}
        root = StateRoot()
        usage = root.use(selector(lambda access: streams[access.get(base)]))
        streams[1].emit("one")

        root.use(base).dispatch(2)
        assert streams[1].subscriber_count == 0
        assert usage.value == "one"

        streams[1].emit("ignored")
        streams[2].emit("two")
        assert usage.value == "two"

    def test_stream_error_reported(self):
        errors = []
        stream = EventStream()
        usage = StateRoot(report=errors.append).use(selector(lambda access: stream))
        stream.emit(1)
        stream.fail(ValueError("broken"))
        assert usage.value == 1
        assert isinstance(errors[0], ValueError)

    def test_non_exception_failure_wrapped(self):
        errors = []
        stream = EventStream()
        StateRoot(report=errors.append).use(selector(lambda access: stream))
        stream.fail("boom")
        assert isinstance(errors[0], RecoilxError)
        assert str(errors[0]) == INITIAL_ERROR

    def test_recomputed_stream_failure_uses_recompute_tag(self):
        errors = []
        base = atom(1)
        streams = {1: EventStream(), 2: EventStream()}
        root = StateRoot(report=errors.append)
        root.use(selector(lambda access: streams[access.get(base)]))
        root.use(base).dispatch(2)
        streams[2].fail("boom")
        assert str(errors[0]) == RECOMPUTE_ERROR

    def test_custom_push_stream(self):
        class Ticker:
            def __init__(self):
                self.on_next = None

            def subscribe(self, on_next, on_error=None):
                self.on_next = on_next
                return self.dispose

            def dispose(self):
                self.on_next = None

        ticker = Ticker()
        usage = StateRoot().use(selector(lambda access: ticker))
        assert usage.value is PENDING
        ticker.on_next("tick")
        assert usage.value == "tick"
        usage.release()
        assert ticker.on_next is None

    def test_mapped_stream(self):
        stream = EventStream()
        usage = StateRoot().use(selector(lambda access: stream.map(lambda v: v.upper())))
        stream.emit("loud")
        assert usage.value == "LOUD"


class TestAsyncMount:
    def test_async_mount_cleanup(self):
        async def scenario():
            cleaned = []

            async def on_mount(access):
                await asyncio.sleep(0)
                return lambda: cleaned.append(True)

            root = StateRoot()
            usage = root.use(atom("x", on_mount=on_mount))
            await _settle()
            usage.release()
            assert cleaned == [True]

        asyncio.run(scenario())

    def test_cleanup_runs_when_mount_finishes_after_release(self):
        async def scenario():
            cleaned = []
            gate = asyncio.get_running_loop().create_future()

            async def on_mount(access):
                await gate
                return lambda: cleaned.append(True)

            root = StateRoot()
            root.use(atom("x", on_mount=on_mount)).release()
            assert len(root) == 0
            assert cleaned == []

            gate.set_result(None)
            await _settle()
            assert cleaned == [True]

        asyncio.run(scenario())

    def test_async_mount_error_reported(self):
        async def scenario():
            errors = []

            async def on_mount(access):
                raise RuntimeError("mount failed")

            root = StateRoot(report=errors.append)
            usage = root.use(atom("x", on_mount=on_mount))
            await _settle()
            assert [str(e) for e in errors] == ["mount failed"]
            usage.release()
            assert len(root) == 0

        asyncio.run(scenario())
