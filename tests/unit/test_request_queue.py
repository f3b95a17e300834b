#!/usr/bin/env python3
"""
Unit tests for the serial request queue.
"""

import asyncio
import time

import pytest

from tunesmith.api.base_client import APIError, RateLimitError
from tunesmith.utils.backoff import BackoffPolicy
from tunesmith.utils.request_queue import RequestQueue

class TestRequestQueue:
    """Unit tests for RequestQueue."""

    @pytest.mark.asyncio
    async def test_operations_never_overlap_and_start_in_order(self):
        queue = RequestQueue(spacing_seconds=0)
        spans = []

        def make_operation(label):
            async def operation():
                start = time.monotonic()
                await asyncio.sleep(0.01)
                spans.append((label, start, time.monotonic()))
                return label
            return operation

        results = await asyncio.gather(*(queue.enqueue(make_operation(i)) for i in range(5)))

        assert results == [0, 1, 2, 3, 4]
        assert [label for label, _, _ in spans] == [0, 1, 2, 3, 4]
        for (_, _, previous_end), (_, next_start, _) in zip(spans, spans[1:]):
            assert next_start >= previous_end

    @pytest.mark.asyncio
    async def test_pauses_after_every_operation(self, fake_sleep):
        queue = RequestQueue(spacing_seconds=0.05, sleep=fake_sleep)

        async def ok():
            return "ok"

        async def fail():
            raise APIError("bad request", status_code=400)

        assert await queue.enqueue(ok) == "ok"
        with pytest.raises(APIError):
            await queue.enqueue(fail)

        assert fake_sleep.delays == [0.05, 0.05]

    @pytest.mark.asyncio
    async def test_failure_does_not_block_later_operations(self, fake_sleep):
        queue = RequestQueue(spacing_seconds=0, sleep=fake_sleep)

        async def fail():
            raise APIError("not found", status_code=404)

        async def ok():
            return 42

        results = await asyncio.gather(queue.enqueue(fail), queue.enqueue(ok), return_exceptions=True)

        assert isinstance(results[0], APIError)
        assert results[1] == 42

    @pytest.mark.asyncio
    async def test_rate_limited_operation_retries_inside_the_queue(self, fake_sleep):
        queue = RequestQueue(spacing_seconds=0.05, policy=BackoffPolicy(initial_delay=1.0), sleep=fake_sleep)
        attempts = []

        async def flaky():
            attempts.append(len(attempts))
            if len(attempts) < 3:
                raise RateLimitError()
            return "done"

        assert await queue.enqueue(flaky) == "done"
        assert len(attempts) == 3
        assert fake_sleep.delays == [1.0, 2.0, 0.05]

    @pytest.mark.asyncio
    async def test_worker_stops_when_idle(self, fake_sleep):
        queue = RequestQueue(spacing_seconds=0, sleep=fake_sleep)

        async def ok():
            return None

        await queue.enqueue(ok)
        await asyncio.sleep(0)

        assert queue.pending_count == 0
        assert not queue.is_processing
