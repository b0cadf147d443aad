"""
Shard Scheduler
Runs shard generators serially or with staggered concurrent launches.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List

from acemock.schemas import PerformanceConfig, Question, ShardingMode
from acemock.services.progress import ProgressReporter

logger = logging.getLogger(__name__)

# Share of overall run progress owned by shard generation
SHARD_PROGRESS_START = 40
SHARD_PROGRESS_END = 90

ShardRunner = Callable[[int, int], Awaitable[List[Question]]]


def shard_progress(completed: int, total: int) -> int:
    """Maps completed/total shards onto the 40-90% progress window."""
    span = SHARD_PROGRESS_END - SHARD_PROGRESS_START
    return SHARD_PROGRESS_START + round(completed / total * span)


async def run_shards(
    plan: List[int],
    run_shard: ShardRunner,
    performance: PerformanceConfig,
    report: ProgressReporter,
) -> List[Question]:
    """
    Executes one ``run_shard(index, size)`` call per planned shard.

    SERIAL awaits each shard before starting the next. PARALLEL launches each
    shard without waiting, sleeping ``request_delay_ms`` between launches, then
    joins on all of them. Either way the first shard failure aborts the run and
    propagates unchanged; results are returned in shard order.

    Raises:
        Exception: Whatever the failing shard raised.
    """
    total = len(plan)
    delay = performance.request_delay_ms / 1000

    if performance.sharding_mode == ShardingMode.SERIAL:
        questions: List[Question] = []
        for index, size in enumerate(plan):
            if index > 0 and delay > 0:
                report(f"串行间隔: 等待 {performance.request_delay_ms}ms...")
                await asyncio.sleep(delay)

            report(f"正在提取/生成分片 {index + 1}/{total}...", SHARD_PROGRESS_START)
            questions.extend(await run_shard(index, size))
            report(
                f"分片 {index + 1}/{total} 完成，已累计 {len(questions)} 题",
                shard_progress(index + 1, total),
            )
        return questions

    completed = 0

    async def tracked(index: int, size: int) -> List[Question]:
        nonlocal completed
        result = await run_shard(index, size)
        completed += 1
        report(
            f"分片 {index + 1}/{total} 完成 ({len(result)} 题)",
            shard_progress(completed, total),
        )
        return result

    report(f"正在以 {performance.request_delay_ms}ms 间隔错开启动 {total} 个请求...", SHARD_PROGRESS_START)
    tasks: List[asyncio.Task] = []
    try:
        for index, size in enumerate(plan):
            if index > 0 and delay > 0:
                await asyncio.sleep(delay)
            report(f"启动分片 {index + 1}/{total}...")
            tasks.append(asyncio.create_task(tracked(index, size)))

        report("所有分片已投递，正在等待 AI 响应汇总...")
        results = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        # Collect every outcome so no sibling failure goes unretrieved
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    return [question for batch in results for question in batch]
