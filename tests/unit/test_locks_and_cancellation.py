import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from discovery.utils import cancellation
from discovery.utils.cancellation import ClientDisconnected, cancel_on_disconnect, run_to_completion
from discovery.utils.locks import RedisLock


pytestmark = pytest.mark.unit


class TestRedisLock:
    @pytest.mark.asyncio
    async def test_acquire_sets_key_with_ttl(self):
        redis = AsyncMock()
        redis.set.return_value = True
        lock = RedisLock(redis, "fav:u1:p1", ttl=7)
        assert await lock.acquire() is True
        args, kwargs = redis.set.await_args
        assert args[0] == "lock:fav:u1:p1"
        assert kwargs == {"nx": True, "ex": 7}

    @pytest.mark.asyncio
    async def test_acquire_wait_retries_until_free(self):
        redis = AsyncMock()
        redis.set.side_effect = [False, False, True]
        assert await RedisLock(redis, "k").acquire_wait(timeout=1) is True
        assert redis.set.await_count == 3

    @pytest.mark.asyncio
    async def test_release_only_with_own_token(self):
        redis = AsyncMock()
        redis.set.return_value = True
        lock = RedisLock(redis, "k")
        await lock.release()
        redis.eval.assert_not_awaited()

        await lock.acquire()
        token = redis.set.await_args.args[1]
        await lock.release()
        args = redis.eval.await_args.args
        assert args[1:] == (1, "lock:k", token)


def _request(disconnect_after=None):
    request = MagicMock()
    request.url.path = "/search"
    calls = {"n": 0}

    async def is_disconnected():
        calls["n"] += 1
        return disconnect_after is not None and calls["n"] > disconnect_after

    request.is_disconnected = is_disconnected
    return request


class TestCancellation:
    @pytest.mark.asyncio
    async def test_result_is_returned_while_connected(self):
        async def work():
            await asyncio.sleep(0.01)
            return 42

        assert await cancel_on_disconnect(_request(), work(), poll_interval=0.001) == 42

    @pytest.mark.asyncio
    async def test_disconnect_cancels_the_call(self):
        cancelled = asyncio.Event()

        async def slow():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(ClientDisconnected):
            await cancel_on_disconnect(_request(disconnect_after=1), slow(), poll_interval=0.001)
        await asyncio.sleep(0.01)
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        async def boom():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await cancel_on_disconnect(_request(), boom(), poll_interval=0.001)

    @pytest.mark.asyncio
    async def test_mutation_finishes_even_if_caller_is_cancelled(self):
        finished = asyncio.Event()

        async def mutation():
            await asyncio.sleep(0.02)
            finished.set()

        caller = asyncio.ensure_future(run_to_completion(mutation()))
        await asyncio.sleep(0.005)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller
        await asyncio.wait_for(finished.wait(), timeout=1)
        await asyncio.sleep(0.01)
        assert not cancellation._pending

    @pytest.mark.asyncio
    async def test_mutation_failure_after_caller_left_is_logged(self, caplog):
        caplog.set_level("ERROR", logger="discovery.utils.cancellation")

        async def mutation():
            await asyncio.sleep(0.02)
            raise RuntimeError("write failed")

        caller = asyncio.ensure_future(run_to_completion(mutation()))
        await asyncio.sleep(0.005)
        assert len(cancellation._pending) == 1
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        for _ in range(100):
            if not cancellation._pending:
                break
            await asyncio.sleep(0.01)
        assert not cancellation._pending
        failures = [r for r in caplog.records if r.getMessage() == "shielded mutation failed"]
        assert len(failures) == 1
        assert isinstance(failures[0].exc_info[1], RuntimeError)
