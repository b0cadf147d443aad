"""
External Context Enricher
Finds keywords for answers the materials leave out ("略", "见教材" ...) and
turns a web search for them into a reference block for the shard prompts.
"""
import logging
import re
from typing import Callable, List, Optional

import httpx
from google import genai
from google.genai import types

from acemock.config import MODEL_NAME, get_prompt
from acemock.schemas import Material, PerformanceConfig, QuestionType, SearchConfig, SearchEngine, SearchResult
from acemock.services import search
from acemock.services.retry import call_with_retry

logger = logging.getLogger(__name__)

QUESTION_TYPE_LABELS = {
    QuestionType.SINGLE_CHOICE: "选择题",
    QuestionType.MULTI_CHOICE: "选择题",
    QuestionType.TRUE_FALSE: "判断题",
    QuestionType.MATCHING: "连线题",
    QuestionType.ORDERING: "排序题",
    QuestionType.FILL_IN_BLANK: "填空题",
    QuestionType.SHORT_ANSWER: "简答题/问答题",
    QuestionType.NOUN_EXPLANATION: "名词解释/术语定义",
    QuestionType.ANALYSIS: "鉴析题/案例分析/论述题",
    QuestionType.FLASHCARD: "知识点卡片",
}

ENGINE_NAMES = {
    SearchEngine.GOOGLE_NATIVE: "Google Native (AI Search)",
    SearchEngine.BAIDU_SEARCH1: "百度 (Search1)",
    SearchEngine.TAVILY: "Tavily AI",
    SearchEngine.GOOGLE_SERPER: "Google (Serper)",
}

_KEYWORD_LABEL = re.compile(r"^(关键词|Keywords)[:：]", re.IGNORECASE)
_COMPLETENESS_MARKERS = ("完整", "提供", "没有缺失", "无需")
# Longer replies are treated as prose rather than a keyword list
MAX_KEYWORD_REPLY_LENGTH = 40

ProgressLog = Callable[[str, Optional[int]], None]


def build_material_parts(materials: List[Material]) -> List[types.Part]:
    """Wraps each material as an inline-data part for the Gemini request."""
    return [types.Part.from_bytes(data=m.data, mime_type=m.mime_type) for m in materials]


def allowed_type_labels(allowed_types: List[QuestionType]) -> str:
    labels: List[str] = []
    for question_type in allowed_types:
        label = QUESTION_TYPE_LABELS.get(question_type, question_type.value)
        if label not in labels:
            labels.append(label)
    return "、".join(labels)


def clean_keywords(reply: Optional[str]) -> str:
    """Strips whitespace and a leading "关键词:" / "Keywords:" label."""
    keywords = (reply or "").strip()
    return _KEYWORD_LABEL.sub("", keywords).strip()


def keywords_usable(keywords: str) -> bool:
    """
    False when the scout reply means "nothing to search": empty, the NONE
    sentinel, or a long prose answer claiming the materials are complete.
    """
    if not keywords or keywords.upper() == "NONE":
        return False
    chatty = len(keywords) > MAX_KEYWORD_REPLY_LENGTH and any(
        marker in keywords for marker in _COMPLETENESS_MARKERS
    )
    return not chatty


def format_search_results(results: List[SearchResult]) -> str:
    return "\n".join(
        f"[参考源 {index}] 标题: {result.title}\n摘要内容: {result.snippet}"
        for index, result in enumerate(results, start=1)
    )


def grounding_titles(response: types.GenerateContentResponse) -> List[str]:
    """Collects web source titles from a grounded response, if any."""
    if not response.candidates:
        return []
    metadata = response.candidates[0].grounding_metadata
    if metadata is None or not metadata.grounding_chunks:
        return []
    return [
        chunk.web.title
        for chunk in metadata.grounding_chunks
        if chunk.web is not None and chunk.web.title
    ]


def wrap_context(search_context: str) -> str:
    return (
        "\n--- 外部网络参考资料 (优先使用此资料补全“略”或“无答案”的题目) ---\n"
        f"{search_context}\n"
        "--- 资料结束 ---\n"
    )


async def _native_search(
    client: genai.Client,
    keywords: str,
    performance: PerformanceConfig,
) -> str:
    response = await call_with_retry(
        lambda: client.aio.models.generate_content(
            model=MODEL_NAME,
            contents=get_prompt("web_researcher", keywords=keywords),
            config=types.GenerateContentConfig(
                tools=[types.Tool(google_search=types.GoogleSearch())],
            ),
        ),
        "联网检索",
        performance.max_retries,
        performance.retry_delay_ms / 1000,
    )
    context = response.text or ""
    titles = grounding_titles(response)
    if titles:
        context += "\n[来源]: " + ", ".join(titles)
    return context


async def fetch_external_context(
    client: genai.Client,
    materials: List[Material],
    allowed_types: List[QuestionType],
    search_config: SearchConfig,
    performance: PerformanceConfig,
    log: ProgressLog,
    http_client: Optional[httpx.AsyncClient] = None,
) -> str:
    """
    Best-effort enrichment block for the shard prompts.

    Asks the backend for search keywords covering missing answers of the
    selected question types only, searches for them with the configured
    engine and returns the wrapped result. Returns "" when there are no
    materials, nothing is missing, the search finds nothing or anything fails.
    """
    if not materials:
        return ""

    engine = search_config.engine
    log(f"[联网模式] 正在调用: {ENGINE_NAMES[engine]}", 12)

    try:
        log("正在扫描文档以提取缺失知识点的检索关键词...", 15)
        prompt = get_prompt("keyword_scout", allowed_type_labels=allowed_type_labels(allowed_types))
        scout_response = await call_with_retry(
            lambda: client.aio.models.generate_content(
                model=MODEL_NAME,
                contents=[*build_material_parts(materials), prompt],
            ),
            "提取检索关键词",
            performance.max_retries,
            performance.retry_delay_ms / 1000,
        )

        keywords = clean_keywords(scout_response.text)
        if not keywords_usable(keywords):
            log("所需题型内容完整或无缺失，跳过联网检索步骤。", 20)
            return ""

        log(f"检索关键词(已过滤): 【{keywords}】", 18)
        log("正在发起 API 实时检索以补全缺失内容...", 20)

        if engine == SearchEngine.GOOGLE_NATIVE:
            search_context = await _native_search(client, keywords, performance)
        else:
            results = await search.search(
                engine, keywords, search_config.key_for(engine), client=http_client
            )
            search_context = format_search_results(results)

        if search_context:
            log("联网检索完成，已获取补全参考资料", 25)
            return wrap_context(search_context)
    except Exception as e:
        logger.warning("External context lookup failed: %s", e)
        log("联网搜索接口调用失败，自动切换为纯文档模式。", 25)
    return ""
