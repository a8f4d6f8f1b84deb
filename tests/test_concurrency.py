import asyncio

import pytest

from interview_eval.utils.concurrency import run_bounded
from interview_eval.utils.error_handlers import BackendError, InvalidInputError, _is_retryable
from interview_eval.utils.export import format_number, quote_csv


def test_run_bounded_limits_in_flight_work():
    in_flight = 0
    peak = 0

    async def worker(index, item):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01 * (item % 3))
        in_flight -= 1
        return item * 10

    results = asyncio.run(run_bounded(list(range(7)), worker, concurrency=3))

    assert results == [0, 10, 20, 30, 40, 50, 60]
    assert peak == 3


def test_run_bounded_stops_starting_work_after_failure():
    started = []

    async def worker(index, item):
        started.append(item)
        await asyncio.sleep(0)
        if item == 1:
            raise ValueError("boom")
        return item

    with pytest.raises(ValueError):
        asyncio.run(run_bounded([0, 1, 2, 3, 4], worker, concurrency=1))
    assert started == [0, 1]


def test_run_bounded_should_continue():
    async def worker(index, item):
        return item

    results = asyncio.run(run_bounded([1, 2, 3], worker, concurrency=1, should_continue=lambda: False))
    assert results == [None, None, None]


def test_run_bounded_rejects_zero_concurrency():
    async def worker(index, item):
        return item

    with pytest.raises(ValueError):
        asyncio.run(run_bounded([1], worker, concurrency=0))


def test_retry_only_recoverable_errors():
    assert _is_retryable(BackendError("rate limited", status=429, recoverable=True))
    assert not _is_retryable(BackendError("bad key", status=401))
    assert not _is_retryable(InvalidInputError("empty"))
    assert _is_retryable(ConnectionResetError())


def test_export_helpers():
    assert format_number(85.0) == "85"
    assert format_number(7.5) == "7.5"
    assert format_number(None) == ""
    assert quote_csv('say "hi"') == '"say ""hi"""'
