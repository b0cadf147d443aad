"""
Test External Context Enricher
Tests keyword classification, both search branches and graceful degradation.
"""
import asyncio
import pytest
from unittest.mock import AsyncMock, patch

from acemock.schemas import QuestionType, SearchConfig, SearchEngine, SearchResult
from acemock.services.enricher import (
    allowed_type_labels,
    clean_keywords,
    fetch_external_context,
    keywords_usable,
)


def _run(client, materials, performance, search_config=None, types=None):
    logs = []
    context = asyncio.run(
        fetch_external_context(
            client,
            materials,
            types or [QuestionType.SHORT_ANSWER],
            search_config or SearchConfig(),
            performance,
            lambda message, progress=None: logs.append((message, progress)),
        )
    )
    return context, logs


def test_no_materials_short_circuits(mock_gemini_client, fast_performance):
    """Zero materials returns "" without any backend call."""
    context, logs = _run(mock_gemini_client, [], fast_performance)

    assert context == ""
    assert logs == []
    mock_gemini_client.aio.models.generate_content.assert_not_called()


@pytest.mark.parametrize(
    "reply, expected",
    [
        ("关键词: 光合作用 叶绿体", "光合作用 叶绿体"),
        ("Keywords：DNA RNA", "DNA RNA"),
        ("  NONE  ", "NONE"),
        (None, ""),
    ],
)
def test_clean_keywords(reply, expected):
    assert clean_keywords(reply) == expected


@pytest.mark.parametrize("keywords", ["", "NONE", "None", "none"])
def test_keywords_not_usable_for_sentinels(keywords):
    assert not keywords_usable(keywords)


def test_keywords_chatty_completeness_reply_is_rejected():
    prose = "经过仔细检查，文档中所选题型的所有题目都已经提供了完整的参考答案，因此没有缺失内容需要补全，无需进行任何检索。"
    assert len(prose) > 40
    assert not keywords_usable(prose)


def test_keywords_long_but_plain_list_is_usable():
    keywords = " ".join(["细胞膜结构", "流动镶嵌模型", "主动运输", "协助扩散", "胞吞胞吐", "渗透作用", "质壁分离", "载体蛋白", "细胞壁"])
    assert len(keywords) > 40
    assert keywords_usable(keywords)


def test_allowed_type_labels_deduplicates():
    labels = allowed_type_labels([QuestionType.SINGLE_CHOICE, QuestionType.MULTI_CHOICE, QuestionType.ANALYSIS])
    assert labels == "选择题、鉴析题/案例分析/论述题"


def test_scout_prompt_lists_only_selected_types(mock_gemini_client, sample_material, fast_performance, response_factory):
    mock_gemini_client.aio.models.generate_content.return_value = response_factory("NONE")

    _run(mock_gemini_client, [sample_material], fast_performance, types=[QuestionType.TRUE_FALSE])

    contents = mock_gemini_client.aio.models.generate_content.call_args.kwargs["contents"]
    prompt = contents[-1]
    assert "【判断题】" in prompt
    assert len(contents) == 2


def test_none_reply_skips_search(mock_gemini_client, sample_material, fast_performance, response_factory):
    mock_gemini_client.aio.models.generate_content.return_value = response_factory("NONE")

    context, logs = _run(mock_gemini_client, [sample_material], fast_performance)

    assert context == ""
    assert mock_gemini_client.aio.models.generate_content.await_count == 1
    assert any("跳过联网检索" in message for message, _ in logs)


def test_native_search_appends_sources(mock_gemini_client, sample_material, fast_performance, response_factory):
    mock_gemini_client.aio.models.generate_content.side_effect = [
        response_factory("光合作用 叶绿体"),
        response_factory("光合作用是植物利用光能的过程。", titles=["百科", "教材"]),
    ]

    context, _ = _run(mock_gemini_client, [sample_material], fast_performance)

    assert "光合作用是植物利用光能的过程。" in context
    assert "[来源]: 百科, 教材" in context
    assert "外部网络参考资料" in context
    assert context.rstrip().endswith("--- 资料结束 ---")

    search_call = mock_gemini_client.aio.models.generate_content.call_args_list[1]
    assert search_call.kwargs["config"].tools[0].google_search is not None
    assert "光合作用 叶绿体" in search_call.kwargs["contents"]


def test_external_provider_formats_numbered_blocks(mock_gemini_client, sample_material, fast_performance, response_factory):
    mock_gemini_client.aio.models.generate_content.return_value = response_factory("线粒体")
    results = [
        SearchResult(title="线粒体 - 百科", link="https://a", snippet="细胞的能量工厂"),
        SearchResult(title="细胞器", link="https://b", snippet="膜结构"),
    ]
    config = SearchConfig(engine=SearchEngine.TAVILY, tavily_key="tvly-key")

    with patch("acemock.services.enricher.search.search", new=AsyncMock(return_value=results)) as search:
        context, _ = _run(mock_gemini_client, [sample_material], fast_performance, search_config=config)

    search.assert_awaited_once()
    assert search.await_args.args[:3] == (SearchEngine.TAVILY, "线粒体", "tvly-key")
    assert "[参考源 1] 标题: 线粒体 - 百科\n摘要内容: 细胞的能量工厂" in context
    assert "[参考源 2] 标题: 细胞器" in context


def test_external_provider_without_results_returns_empty(mock_gemini_client, sample_material, fast_performance, response_factory):
    mock_gemini_client.aio.models.generate_content.return_value = response_factory("线粒体")
    config = SearchConfig(engine=SearchEngine.GOOGLE_SERPER)

    with patch("acemock.services.enricher.search.search", new=AsyncMock(return_value=[])):
        context, _ = _run(mock_gemini_client, [sample_material], fast_performance, search_config=config)

    assert context == ""


def test_backend_failure_degrades_to_empty(mock_gemini_client, sample_material, fast_performance):
    """Enrichment never fails the run, even after retries are exhausted."""
    mock_gemini_client.aio.models.generate_content.side_effect = RuntimeError("quota")

    context, logs = _run(mock_gemini_client, [sample_material], fast_performance)

    assert context == ""
    assert mock_gemini_client.aio.models.generate_content.await_count == fast_performance.max_retries + 1
    assert any("纯文档模式" in message for message, _ in logs)
