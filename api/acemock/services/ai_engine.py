"""
AI Engine Service
Handles all interactions with Google Gemini API for question extraction and exam generation.
"""
import json
import logging
import random
import time
from typing import Callable, List, Optional

import httpx
from google import genai
from google.genai import types

from acemock.config import EXTRACTION_TEMPERATURE, MODEL_NAME, get_api_key, get_prompt
from acemock.schemas import (
    DedupConfig,
    Material,
    PerformanceConfig,
    Question,
    QuestionBatch,
    QuestionType,
    SearchConfig,
    ShardingMode,
)
from acemock.services.cleaner import clean_question_prefix
from acemock.services.dedup import deduplicate_questions
from acemock.services.enricher import build_material_parts, fetch_external_context
from acemock.services.normalizer import to_question
from acemock.services.progress import ProgressCallback, ProgressReporter
from acemock.services.retry import call_with_retry
from acemock.services.scheduler import run_shards

logger = logging.getLogger(__name__)

# Recommendation only looks at the head of the first few materials
RECOMMEND_MAX_MATERIALS = 3
RECOMMEND_MAX_BYTES = 1024 * 1024
DEFAULT_RECOMMENDED_TYPES = [
    QuestionType.SINGLE_CHOICE,
    QuestionType.TRUE_FALSE,
    QuestionType.SHORT_ANSWER,
]


class EmptyResponseError(RuntimeError):
    """The backend answered a shard call without any text."""


def calculate_batches(total_count: int, max_batch: int = 10) -> List[int]:
    """
    Splits total_count into batch sizes capped by max_batch.

    Args:
        total_count: Total number of questions requested.
        max_batch: Maximum number of questions per batch.

    Returns:
        A list of batch sizes (e.g., 25 -> [10, 10, 5]).

    Raises:
        ValueError: If total_count or max_batch is not positive.
    """
    if total_count <= 0:
        raise ValueError("total_count must be positive")
    if max_batch <= 0:
        raise ValueError("max_batch must be positive")

    batches: List[int] = []
    remaining = total_count
    while remaining > 0:
        batch_size = min(max_batch, remaining)
        batches.append(batch_size)
        remaining -= batch_size
    return batches


def get_client(api_key: Optional[str] = None) -> genai.Client:
    """
    Creates and returns a configured Gemini API client.

    Returns:
        genai.Client: Authenticated Gemini client.

    Raises:
        ValueError: If API key is not configured.
    """
    resolved_key = api_key.strip() if api_key else ""
    if not resolved_key:
        resolved_key = get_api_key()
    return genai.Client(api_key=resolved_key)


def make_question_id(run_stamp: int, shard_index: int, position: int) -> str:
    """Run-unique id from a millisecond timestamp plus shard/position indices."""
    return f"q-{run_stamp}-{shard_index}-{position}"


async def generate_batch(
    client: genai.Client,
    parts: List[types.Part],
    question_count: int,
    allowed_types: List[QuestionType],
    difficulty: str,
    external_context: str,
    batch_index: int,
    total_batches: int,
    performance: Optional[PerformanceConfig] = None,
    on_log: Optional[Callable[[str], None]] = None,
    run_stamp: Optional[int] = None,
) -> List[Question]:
    """
    Extracts (or, for plain textbooks, generates) one shard of questions.

    Args:
        client: Authenticated Gemini client.
        parts: Material parts sent with every shard.
        question_count: Number of questions requested for this shard.
        allowed_types: Question types the backend may emit.
        difficulty: Difficulty label embedded in the prompt.
        external_context: Enrichment block appended to the prompt verbatim.
        batch_index: Zero-based shard index.
        total_batches: Number of shards in the run.

    Returns:
        Normalized questions; may be fewer than requested.

    Raises:
        EmptyResponseError: If the backend returned no text.
        pydantic.ValidationError: If the response is not a valid question batch.
    """
    performance = performance or PerformanceConfig()
    prompt = get_prompt(
        "extractor",
        question_count=question_count,
        batch_number=batch_index + 1,
        total_batches=total_batches,
        difficulty=difficulty,
        allowed_types=", ".join(t.value for t in allowed_types),
        external_context=external_context,
    )

    response = await call_with_retry(
        lambda: client.aio.models.generate_content(
            model=MODEL_NAME,
            contents=[*parts, prompt],
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=QuestionBatch,
                temperature=EXTRACTION_TEMPERATURE,
            ),
        ),
        f"生成第 {batch_index + 1} 组题目",
        performance.max_retries,
        performance.retry_delay_ms / 1000,
        on_log,
    )

    text = response.text
    if not text:
        raise EmptyResponseError(f"Batch {batch_index + 1} returned no text")

    batch = QuestionBatch.model_validate_json(text)
    stamp = run_stamp if run_stamp is not None else int(time.time() * 1000)
    return [
        to_question(raw, make_question_id(stamp, batch_index, position))
        for position, raw in enumerate(batch.questions)
    ]


async def generate_exam_questions(
    client: genai.Client,
    materials: List[Material],
    count: int,
    allowed_types: List[QuestionType],
    difficulty: str,
    shuffle: bool = False,
    on_log: Optional[ProgressCallback] = None,
    performance: Optional[PerformanceConfig] = None,
    search_config: Optional[SearchConfig] = None,
    dedup_config: Optional[DedupConfig] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> List[Question]:
    """
    Full pipeline: enrich once, plan shards, run them, clean and deduplicate.

    Args:
        client: Authenticated Gemini client.
        materials: Documents to extract questions from.
        count: Total number of questions requested.
        allowed_types: Question types the user selected.
        difficulty: Difficulty label (简单 / 中等 / 困难).
        shuffle: Shuffle the final list.
        on_log: Receives (message, progress) with non-decreasing progress.

    Returns:
        The deduplicated question list, shuffled if requested.

    Raises:
        ValueError: If count is not positive.
        Exception: The first fatal shard error, unchanged.
    """
    performance = performance or PerformanceConfig()
    search_config = search_config or SearchConfig()
    report = ProgressReporter(on_log)

    plan = calculate_batches(count, performance.batch_size)

    report("正在启动 AI 出题引擎...", 5)
    external_context = await fetch_external_context(
        client, materials, allowed_types, search_config, performance, report, http_client
    )

    report("正在执行“复印机式”文档分片解析...", 30)
    parts = build_material_parts(materials)
    mode_label = "串行模式 (顺序等待)" if performance.sharding_mode == ShardingMode.SERIAL else "并行模式 (交错启动)"
    report(
        f"配置详情: 分片大小 {performance.batch_size}, 总片数 {len(plan)}, "
        f"间隔 {performance.request_delay_ms}ms, 模式 {mode_label}",
        35,
    )

    run_stamp = int(time.time() * 1000)

    async def run_shard(index: int, size: int) -> List[Question]:
        return await generate_batch(
            client,
            parts,
            size,
            allowed_types,
            difficulty,
            external_context,
            index,
            len(plan),
            performance,
            report.sink(),
            run_stamp,
        )

    questions = await run_shards(plan, run_shard, performance, report)

    report("所有分片生成完毕，正在进行智能清洗与去重...", 95)
    cleaned = [
        question.model_copy(update={"question_text": clean_question_prefix(question.question_text)})
        for question in questions
    ]
    unique = deduplicate_questions(cleaned, dedup_config)

    if len(unique) < len(questions):
        report(
            f"已智能过滤 {len(questions) - len(unique)} 道重复题目 (保留 {len(unique)} 题)",
            98,
        )

    report("试卷生成成功！", 100)

    if shuffle:
        random.shuffle(unique)
    return unique


async def recommend_question_types(
    client: genai.Client,
    materials: List[Material],
) -> List[QuestionType]:
    """
    Suggests question types that suit the uploaded materials.

    Falls back to single choice, true/false and short answer on any failure.
    """
    if not materials:
        return []

    parts = [
        types.Part.from_bytes(data=m.data[:RECOMMEND_MAX_BYTES], mime_type=m.mime_type)
        for m in materials[:RECOMMEND_MAX_MATERIALS]
    ]

    try:
        response = await client.aio.models.generate_content(
            model=MODEL_NAME,
            contents=[*parts, get_prompt("type_advisor")],
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                temperature=EXTRACTION_TEMPERATURE,
            ),
        )
        names = json.loads(response.text or "[]")
        recommended: List[QuestionType] = []
        for name in names:
            try:
                question_type = QuestionType(name)
            except ValueError:
                logger.warning("Ignoring unknown recommended type: %r", name)
                continue
            if question_type not in recommended:
                recommended.append(question_type)
        return recommended
    except Exception as e:
        logger.warning("Question type recommendation failed: %s", e)
        return list(DEFAULT_RECOMMENDED_TYPES)
