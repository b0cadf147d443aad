"""
Pytest Configuration & Shared Fixtures
"""
import json
import pytest
from unittest.mock import AsyncMock, MagicMock
from google.genai import types

from acemock.schemas import Material, PerformanceConfig, Question, QuestionType


def build_response(text=None, titles=None) -> types.GenerateContentResponse:
    """Real SDK response object carrying text and optional grounding titles."""
    if text is None:
        return types.GenerateContentResponse(candidates=[])

    grounding = None
    if titles:
        grounding = types.GroundingMetadata(
            grounding_chunks=[
                types.GroundingChunk(web=types.GroundingChunkWeb(title=title, uri=f"https://example.com/{i}"))
                for i, title in enumerate(titles)
            ]
        )
    return types.GenerateContentResponse(
        candidates=[
            types.Candidate(
                content=types.Content(role="model", parts=[types.Part(text=text)]),
                grounding_metadata=grounding,
            )
        ]
    )


def batch_json(*records) -> str:
    """Serializes raw question records the way the backend returns a shard."""
    return json.dumps({"questions": list(records)}, ensure_ascii=False)


def raw_record(text, question_type="SINGLE_CHOICE", answer="A", options=None, explanation="解析"):
    return {
        "type": question_type,
        "question_text": text,
        "options": options if options is not None else ["A. 甲", "B. 乙", "C. 丙", "D. 丁"],
        "correct_answer": answer,
        "explanation": explanation,
    }


@pytest.fixture
def response_factory():
    """Builds Gemini responses without network calls."""
    return build_response


@pytest.fixture
def mock_gemini_client():
    """Mock Gemini client whose async generate_content is an AsyncMock."""
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock()
    return client


@pytest.fixture
def sample_material():
    """A small in-memory PDF material."""
    data = b"%PDF-1.4\n%%EOF"
    return Material(id="m-1", name="notes.pdf", mime_type="application/pdf", data=data, size=len(data))


@pytest.fixture
def fast_performance():
    """Performance config without real waits."""
    return PerformanceConfig(batch_size=10, request_delay_ms=0, retry_delay_ms=0, max_retries=3)


@pytest.fixture
def sample_questions():
    """A mixed question list covering list and string answers."""
    return [
        Question(
            id="q-1-0-0",
            type=QuestionType.SINGLE_CHOICE,
            question_text="光合作用发生在细胞的哪个结构中？",
            options=["线粒体", "叶绿体", "核糖体", "高尔基体"],
            correct_answer="B",
            explanation="叶绿体是光合作用的场所",
        ),
        Question(
            id="q-1-0-1",
            type=QuestionType.TRUE_FALSE,
            question_text="植物只在白天进行呼吸作用。",
            correct_answer="False",
        ),
        Question(
            id="q-1-0-2",
            type=QuestionType.FILL_IN_BLANK,
            question_text="光合作用的产物是______和______。",
            correct_answer=["葡萄糖", "氧气"],
        ),
        Question(
            id="q-1-0-3",
            type=QuestionType.ORDERING,
            question_text="将下列过程按顺序排列",
            options=["暗反应", "光反应"],
            correct_answer=["光反应", "暗反应"],
        ),
        Question(
            id="q-1-0-4",
            type=QuestionType.NOUN_EXPLANATION,
            question_text="光合作用",
            correct_answer="绿色植物利用光能将二氧化碳和水合成有机物的过程。",
        ),
    ]
