"""
Test Shard Scheduler
Tests serial ordering, staggered parallel launches, failure propagation and progress.
"""
import asyncio
import gc
import pytest

from acemock.schemas import PerformanceConfig, Question, QuestionType, ShardingMode
from acemock.services.progress import ProgressReporter
from acemock.services.scheduler import run_shards, shard_progress


class ShardFailed(Exception):
    pass


def _questions(index: int, size: int):
    return [
        Question(
            id=f"q-0-{index}-{position}",
            type=QuestionType.TRUE_FALSE,
            question_text=f"shard {index} question {position}",
            correct_answer="True",
        )
        for position in range(size)
    ]


def _config(mode: ShardingMode, delay_ms: int = 0) -> PerformanceConfig:
    return PerformanceConfig(batch_size=10, request_delay_ms=delay_ms, sharding_mode=mode)


def test_shard_progress_window():
    assert shard_progress(0, 4) == 40
    assert shard_progress(2, 4) == 65
    assert shard_progress(4, 4) == 90


def test_serial_runs_one_shard_at_a_time():
    events = []

    async def run_shard(index, size):
        events.append(("start", index))
        await asyncio.sleep(0)
        events.append(("end", index))
        return _questions(index, size)

    result = asyncio.run(run_shards([2, 2, 1], run_shard, _config(ShardingMode.SERIAL), ProgressReporter()))

    assert events == [("start", 0), ("end", 0), ("start", 1), ("end", 1), ("start", 2), ("end", 2)]
    assert [q.id for q in result] == ["q-0-0-0", "q-0-0-1", "q-0-1-0", "q-0-1-1", "q-0-2-0"]


def test_serial_failure_aborts_remaining_shards():
    started = []

    async def run_shard(index, size):
        started.append(index)
        if index == 1:
            raise ShardFailed("shard 1")
        return _questions(index, size)

    with pytest.raises(ShardFailed, match="shard 1"):
        asyncio.run(run_shards([1, 1, 1], run_shard, _config(ShardingMode.SERIAL), ProgressReporter()))

    assert started == [0, 1]


def test_parallel_overlaps_shards_and_keeps_shard_order():
    """Later shards may finish first; results still come back in shard order."""
    active = 0
    peak = 0
    finished = []

    async def run_shard(index, size):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.03 * (3 - index))
        active -= 1
        finished.append(index)
        return _questions(index, size)

    result = asyncio.run(
        run_shards([1, 1, 1], run_shard, _config(ShardingMode.PARALLEL), ProgressReporter())
    )

    assert peak == 3
    assert finished == [2, 1, 0]
    assert [q.id for q in result] == ["q-0-0-0", "q-0-1-0", "q-0-2-0"]


def test_parallel_staggers_launches():
    launch_times = []

    async def run_shard(index, size):
        launch_times.append(asyncio.get_running_loop().time())
        return _questions(index, size)

    asyncio.run(
        run_shards([1, 1, 1], run_shard, _config(ShardingMode.PARALLEL, delay_ms=40), ProgressReporter())
    )

    gaps = [b - a for a, b in zip(launch_times, launch_times[1:])]
    assert len(gaps) == 2
    assert all(gap >= 0.035 for gap in gaps)


def test_parallel_failure_rejects_whole_run():
    """One failing shard fails the join; no partial list is returned."""
    async def run_shard(index, size):
        await asyncio.sleep(0.01)
        if index == 1:
            raise ShardFailed("shard 1")
        return _questions(index, size)

    async def scenario():
        return await run_shards([1, 1, 1], run_shard, _config(ShardingMode.PARALLEL), ProgressReporter())

    with pytest.raises(ShardFailed, match="shard 1"):
        asyncio.run(scenario())


def _unretrieved_errors(make_run):
    """Runs make_run() and returns loop exception-handler reports."""
    reports = []

    async def scenario():
        loop = asyncio.get_running_loop()
        loop.set_exception_handler(lambda _loop, context: reports.append(context))
        try:
            await make_run()
        except (ShardFailed, asyncio.CancelledError):
            pass
        gc.collect()
        await asyncio.sleep(0)

    asyncio.run(scenario())
    return reports


def test_parallel_every_failed_shard_is_retrieved():
    async def run_shard(index, size):
        await asyncio.sleep(0.01)
        raise ShardFailed(f"shard {index}")

    async def make_run():
        await run_shards([1, 1, 1], run_shard, _config(ShardingMode.PARALLEL), ProgressReporter())

    assert _unretrieved_errors(make_run) == []


def test_parallel_cancelled_during_stagger_retrieves_failed_shard():
    """A shard that failed before the join is still collected when the run is cancelled."""
    async def run_shard(index, size):
        raise ShardFailed(f"shard {index}")

    async def make_run():
        run = asyncio.create_task(
            run_shards([1, 1], run_shard, _config(ShardingMode.PARALLEL, delay_ms=200), ProgressReporter())
        )
        await asyncio.sleep(0.05)
        run.cancel()
        await run

    assert _unretrieved_errors(make_run) == []


def test_progress_reports_are_monotonic_and_reach_ninety():
    reports = []

    async def run_shard(index, size):
        await asyncio.sleep(0.01 * (2 - index))
        return _questions(index, size)

    reporter = ProgressReporter(lambda message, progress: reports.append(progress))
    asyncio.run(run_shards([1, 1, 1], run_shard, _config(ShardingMode.PARALLEL), reporter))

    assert reports == sorted(reports)
    assert reports[0] == 40
    assert reports[-1] == 90


def test_serial_delay_between_shards():
    starts = []

    async def run_shard(index, size):
        starts.append(asyncio.get_running_loop().time())
        return _questions(index, size)

    asyncio.run(
        run_shards([1, 1], run_shard, _config(ShardingMode.SERIAL, delay_ms=40), ProgressReporter())
    )

    assert starts[1] - starts[0] >= 0.035


def test_progress_reporter_clamps():
    seen = []
    reporter = ProgressReporter(lambda message, progress: seen.append(progress))

    reporter("a", 50)
    reporter("b", 30)
    reporter("c")
    reporter("d", 150)

    assert seen == [50, 50, 50, 100]
    assert reporter.history[-1] == ("d", 100)
