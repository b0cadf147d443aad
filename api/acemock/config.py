"""
Configuration Module for AceMock
Centralizes environment variables, API settings, and prompt templates.
"""
import os
from dotenv import load_dotenv

from acemock.schemas import PerformanceConfig, SearchConfig

# --- API Configuration ---
MODEL_NAME = "gemini-2.5-flash"

# Sampling temperature for shard extraction (low for strict adherence)
EXTRACTION_TEMPERATURE = 0.1

def get_api_key() -> str:
    """
    Validates and returns the Gemini API Key.

    Raises:
        ValueError: If GEMINI_API_KEY is not found in environment.
    """
    # Load environment variables fresh (for testing and reload scenarios)
    load_dotenv()
    api_key = os.getenv("GEMINI_API_KEY")

    if not api_key:
        raise ValueError(
            "GEMINI_API_KEY not found. "
            "Please create a .env file with your API key."
        )
    return api_key


def load_performance_config() -> PerformanceConfig:
    """
    Builds the sharding/pacing configuration from the environment.

    Raises:
        pydantic.ValidationError: If a value is out of range or unknown.
    """
    load_dotenv()
    return PerformanceConfig(
        batch_size=int(os.getenv("ACEMOCK_BATCH_SIZE", "10")),
        request_delay_ms=int(os.getenv("ACEMOCK_REQUEST_DELAY_MS", "1000")),
        sharding_mode=os.getenv("ACEMOCK_SHARDING_MODE", "SERIAL").upper(),
        max_retries=int(os.getenv("ACEMOCK_MAX_RETRIES", "3")),
        retry_delay_ms=int(os.getenv("ACEMOCK_RETRY_DELAY_MS", "2000")),
    )


def load_search_config() -> SearchConfig:
    """Builds the enrichment search configuration from the environment."""
    load_dotenv()
    return SearchConfig(
        engine=os.getenv("ACEMOCK_SEARCH_ENGINE", "google_native"),
        baidu_search1_key=os.getenv("SEARCH1_API_KEY", ""),
        google_serper_key=os.getenv("SERPER_API_KEY", ""),
        tavily_key=os.getenv("TAVILY_API_KEY", ""),
    )


# --- Prompt Templates ---
PROMPT_TEMPLATES = {
    "keyword_scout": """请快速扫描文档，判断是否存在题目缺少详细答案的情况（例如标注了“略”、“未提供”、“见教材”或只有名词没有解释）。

*** 智能过滤规则 (重要) ***
用户本次考试**仅选择**了以下题型：【{allowed_type_labels}】。

请执行以下判断逻辑：
1. 识别文档中内容缺失（无答案/无解析）的部分。
2. 判断该缺失部分对应的题型。
3. 如果该内容的题型**不属于**用户选择的范围，请**直接忽略**，不要提取关键词。
   (例如：文档中有一道“简答题”答案略，但用户只选了“选择题”，则必须忽略该简答题的缺失情况)。
4. 仅当缺失内容属于用户**已选择**的题型时，提取核心术语用于搜索引擎检索以补全答案。

返回格式：
- 如果没有符合上述规则的缺失内容（即所需题型内容完整，或缺失内容属于未选题型），直接返回单词 "NONE"。
- 否则，仅返回关键词，用空格分隔，不要包含任何解释性文字。""",

    "web_researcher": "请搜索以下关键词的详细定义和相关知识，用于补全考试题目的答案：{keywords}",

    "extractor": """你是一位极其严谨的考试题目**提取与整理**专家。请根据附件文档内容处理 {question_count} 道题目（这是总任务的第 {batch_number}/{total_batches} 个分片）。

*** 核心指令：原文提取优先于生成 (最高优先级) ***
1. **识别现有题库**：
   - 仔细扫描文档。如果文档本身就是一份试卷、复习资料或题库（例如包含“一、名词解释”、“二、简答题”、“三、鉴析题”等明确板块），你必须**严格优先提取**这些现有的题目。
   - 如果文档中某类题型只有 3 道原题，而要求处理 10 道，请只输出这 3 道原题。不要重复输出相同的题目来凑数。
   - **严禁凑数**：绝对不要为了满足 {question_count} 的数量要求而凭空编造题目，或者将不相关的文本强行伪装成该类型的题目。宁可返回少于请求数量的题目，也不要制造幻觉或重复。

2. **纯教材处理**：
   - 仅当文档是纯文本教材（没有习题板块）时，你才被允许根据知识点“生成”新题目。

3. **精准答案匹配**：
   - 对于【鉴析题】、【简答题】、【名词解释】，如果题干下方出现了“【解题思路】”、“【解析】”、“【答案】”、“【参考答案】”或类似小标题，请将该标题下的全部内容（包括分点）完整摘录到 correct_answer 字段中。

4. **缺失答案的联网补全逻辑**：
   - 若题干下方答案为“略”、“未提供”、“见教材”或直接空白，或者无法在**紧邻的上下文**中找到明确答案：
     a) 禁止脑补：不要去文档其他部分拼凑。
     b) 使用 [外部网络参考资料] 生成标准答案。
     c) explanation 字段必须以“(材料中未提供答案，已由 AI 联网补全)”开头。

--- 字段规范 (必须严格遵守) ---
- MULTI_CHOICE (多选): JSON 数组字符串，例如 '["选项A", "选项B"]'。
- FILL_IN_BLANK (填空): question_text 中用 "______" 或 "( )" 标出每个空位；correct_answer 为按顺序包含所有空缺答案的 JSON 数组字符串，例如 '["答案1", "答案2"]'，只有一个空也要写成 '["答案1"]'。
- TRUE_FALSE (判断): 字符串 "True" (正确) 或 "False" (错误)。
- ORDERING (排序): 正确顺序的 JSON 数组字符串，例如 '["步骤1", "步骤2", "步骤3"]'。
- MATCHING (连线): JSON 数组字符串，格式为 "左项目 :: 右项目"，例如 '["北京 :: 中国", "东京 :: 日本"]'。
- NOUN_EXPLANATION / SHORT_ANSWER / ANALYSIS: correct_answer 直接来源于原文的完整“解题思路”或“参考答案”，保留 Markdown 格式。

--- 参数配置 ---
- 目标难度: {difficulty}。
- 允许题型: {allowed_types}。
- 语言: 简体中文。

请严格按照 JSON Schema 格式输出，确保数据 100% 结构化。
{external_context}""",

    "type_advisor": """分析附件文档，根据以下【三层判断策略】推荐最适合的考试题型：

第一层：【原文精确匹配】(最高优先级)
- 若文档中显式出现了“名词解释”、“术语定义”，必须勾选 NOUN_EXPLANATION。
- 若显式出现“判断题”、“对错题”，必须勾选 TRUE_FALSE。
- 若显式出现“填空题”，必须勾选 FILL_IN_BLANK。
- 若显式出现“连线题”，必须勾选 MATCHING。
- 若显式出现“排序题”，必须勾选 ORDERING。
- 若显式出现“鉴析题”、“案例分析”，必须勾选 ANALYSIS。

第二层：【近义词逻辑映射】
- “简述题”、“简答题”、“问答题”、“描述题” -> SHORT_ANSWER。
- “论述题”、“分析题” -> 偏向理论映射为 SHORT_ANSWER，偏向实例映射为 ANALYSIS。
- “选择题” (带有 A/B/C/D 选项) -> SINGLE_CHOICE 或 MULTI_CHOICE。

第三层：【AI 深度推理适配】
- 若文档主要是零散的知识点、事实、日期 -> 建议 SINGLE_CHOICE 和 FILL_IN_BLANK。
- 若文档包含大量复杂概念定义 -> 建议 NOUN_EXPLANATION。

输出要求：
- 返回一个 JSON 数组，包含所有识别到的题型枚举值。
- 示例: ["SHORT_ANSWER", "NOUN_EXPLANATION", "SINGLE_CHOICE"]""",
}

def get_prompt(agent_type: str, **kwargs) -> str:
    """
    Retrieves a formatted prompt template for a specific agent.

    Args:
        agent_type: Template name ("keyword_scout", "web_researcher",
            "extractor" or "type_advisor").
        **kwargs: Variables to format into the template.

    Returns:
        Formatted prompt string.

    Raises:
        KeyError: If agent_type is not found in templates.
    """
    if agent_type not in PROMPT_TEMPLATES:
        raise KeyError(f"Prompt template '{agent_type}' not found.")

    return PROMPT_TEMPLATES[agent_type].format(**kwargs)
