"""
Data Schemas for AceMock
Pydantic models for type-safe data validation across the generation pipeline.
"""
from enum import Enum
from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, model_validator


class QuestionType(str, Enum):
    """Supported question types for exam generation."""
    SINGLE_CHOICE = "SINGLE_CHOICE"
    MULTI_CHOICE = "MULTI_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    MATCHING = "MATCHING"
    ORDERING = "ORDERING"
    FILL_IN_BLANK = "FILL_IN_BLANK"
    SHORT_ANSWER = "SHORT_ANSWER"
    NOUN_EXPLANATION = "NOUN_EXPLANATION"
    ANALYSIS = "ANALYSIS"
    FLASHCARD = "FLASHCARD"


# Types whose correct answer is an ordered list of strings.
LIST_ANSWER_TYPES = frozenset({
    QuestionType.MULTI_CHOICE,
    QuestionType.ORDERING,
    QuestionType.MATCHING,
    QuestionType.FILL_IN_BLANK,
})


class ShardingMode(str, Enum):
    """How shards are scheduled against the backend."""
    SERIAL = "SERIAL"
    PARALLEL = "PARALLEL"


class SearchEngine(str, Enum):
    """Where enrichment context is fetched from."""
    GOOGLE_NATIVE = "google_native"
    BAIDU_SEARCH1 = "baidu_search1"
    GOOGLE_SERPER = "google_serper"
    TAVILY = "tavily"


class Material(BaseModel):
    """An uploaded document passed to the backend as an inline part."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Material identifier")
    name: str = Field(..., description="Original file name")
    mime_type: str = Field(..., description="MIME type of the payload")
    data: bytes = Field(..., description="Raw document bytes")
    size: int = Field(..., ge=0, description="Payload size in bytes")


class Question(BaseModel):
    """A single exam question whose answer shape follows its type."""
    id: str = Field(..., description="Unique within one generation run")
    type: QuestionType
    question_text: str
    options: List[str] = Field(default_factory=list)
    correct_answer: Union[List[str], str]
    explanation: str = ""

    @model_validator(mode="after")
    def check_answer_shape(self) -> "Question":
        expects_list = self.type in LIST_ANSWER_TYPES
        if expects_list and not isinstance(self.correct_answer, list):
            raise ValueError(f"{self.type.value} requires a list correct_answer")
        if not expects_list and not isinstance(self.correct_answer, str):
            raise ValueError(f"{self.type.value} requires a string correct_answer")
        return self


class RawQuestion(BaseModel):
    """A question record exactly as the backend emits it."""
    type: QuestionType
    question_text: str = Field(
        ...,
        description="题目文本。如果是文档中已有的原题，必须原字不差地摘录。"
    )
    options: Optional[List[str]] = Field(
        None,
        description="单选/多选/排序/连线的原始或乱序选项列表。"
    )
    correct_answer: str = Field(
        ...,
        description="正确答案。如果是原文摘录，必须包含 Markdown 格式。"
    )
    explanation: str = Field("", description="详细解析或来源说明。")


class QuestionBatch(BaseModel):
    """Structured response of a single shard call."""
    questions: List[RawQuestion] = Field(default_factory=list)


class PerformanceConfig(BaseModel):
    """Sharding and pacing knobs for one generation run."""
    model_config = ConfigDict(frozen=True)

    batch_size: int = Field(10, ge=1, description="Maximum questions per shard")
    request_delay_ms: int = Field(1000, ge=0, description="Delay between shard starts")
    sharding_mode: ShardingMode = ShardingMode.SERIAL
    max_retries: int = Field(3, ge=0)
    retry_delay_ms: int = Field(2000, ge=0, description="First retry backoff")


class SearchConfig(BaseModel):
    """Enrichment search engine and its provider credentials."""
    model_config = ConfigDict(frozen=True)

    engine: SearchEngine = SearchEngine.GOOGLE_NATIVE
    baidu_search1_key: str = ""
    google_serper_key: str = ""
    tavily_key: str = ""

    def key_for(self, engine: SearchEngine) -> str:
        return {
            SearchEngine.BAIDU_SEARCH1: self.baidu_search1_key,
            SearchEngine.GOOGLE_SERPER: self.google_serper_key,
            SearchEngine.TAVILY: self.tavily_key,
        }.get(engine, "")


class DedupConfig(BaseModel):
    """Thresholds for fuzzy duplicate matching, tuned for CJK question text."""
    model_config = ConfigDict(frozen=True)

    min_fuzzy_length: int = Field(
        10, ge=0, description="Both fingerprints must be longer than this for fuzzy rules"
    )
    prefix_length: int = Field(15, ge=1, description="Leading characters compared by the prefix rule")


class SearchResult(BaseModel):
    """One hit returned by an external search provider."""
    title: str = ""
    link: str = ""
    snippet: str = ""


class ExamGenerationRequest(BaseModel):
    """Everything one generation run needs from the caller."""
    model_config = ConfigDict(frozen=True)

    materials: List[Material] = Field(default_factory=list)
    count: int = Field(..., ge=1)
    allowed_types: List[QuestionType] = Field(..., min_length=1)
    difficulty: str = "中等"
    shuffle: bool = False
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
