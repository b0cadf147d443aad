"""
Main FastAPI Application
Controller layer that orchestrates the AI pipeline and document services.
"""
import logging
import os
import tempfile
import uuid
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ValidationError
from fastapi import Depends, FastAPI, UploadFile, File, Form, Header, HTTPException
from fastapi.responses import FileResponse
from fastapi.middleware.cors import CORSMiddleware

from acemock.config import load_performance_config, load_search_config
from acemock.schemas import (
    ExamGenerationRequest,
    Material,
    PerformanceConfig,
    Question,
    QuestionType,
    SearchEngine,
)
from acemock.services.ai_engine import (
    EmptyResponseError,
    calculate_batches,
    generate_exam_questions,
    get_client,
    recommend_question_types,
)
from acemock.services.doc_generator import generate_docx
from acemock.services.search import check_search_connection

logger = logging.getLogger(__name__)

# Setup Paths
BASE_DIR = Path(__file__).resolve().parents[2]
OUTPUT_DIR = BASE_DIR / "output"

ALLOWED_DIFFICULTIES = {"简单", "中等", "困难"}
MAX_QUESTION_COUNT = 200
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def get_runtime_output_dir() -> Path:
    """Resolve output directory for local dev or serverless runtime."""
    if os.getenv("VERCEL"):
        return Path(tempfile.gettempdir()) / "acemock-output"
    return OUTPUT_DIR


def parse_question_types(raw: str) -> List[QuestionType]:
    """
    Parses a comma-separated list of question type names.

    Raises:
        HTTPException: 422 if the list is empty or has unknown names.
    """
    names = [name.strip().upper() for name in raw.split(",") if name.strip()]
    if not names:
        raise HTTPException(status_code=422, detail="question_types must not be empty")
    try:
        parsed = [QuestionType(name) for name in names]
    except ValueError:
        allowed = ", ".join(t.value for t in QuestionType)
        raise HTTPException(status_code=422, detail=f"Invalid question_types. Allowed: {allowed}")
    return list(dict.fromkeys(parsed))


async def read_materials(files: List[UploadFile]) -> List[Material]:
    """Reads uploaded files into immutable Material records."""
    materials: List[Material] = []
    for upload in files:
        data = await upload.read()
        materials.append(
            Material(
                id=uuid.uuid4().hex,
                name=upload.filename or "material",
                mime_type=upload.content_type or "application/octet-stream",
                data=data,
                size=len(data),
            )
        )
    return materials


def write_question_sheet(questions: List[Question], title: str) -> str:
    """Renders questions to a fresh .docx in the runtime output dir and returns its name."""
    output_filename = f"exam_{os.urandom(4).hex()}.docx"
    runtime_output_dir = get_runtime_output_dir()
    runtime_output_dir.mkdir(parents=True, exist_ok=True)
    generate_docx(questions, str(runtime_output_dir / output_filename), title=title)
    return output_filename


class RenderDocxRequest(BaseModel):
    questions: List[Question]
    title: str = "模拟试卷"


class SearchTestRequest(BaseModel):
    engine: SearchEngine
    api_key: str = ""


# Initialize FastAPI App
app = FastAPI(
    title="AceMock Exam Engine API",
    description="AI-powered exam question extraction from study materials",
    version="1.0.0"
)

# CORS Middleware (Allow all origins for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def read_root():
    """Return API status info."""
    return {"message": "AceMock Exam Engine API is running."}


def get_api_key_header(
    x_gemini_api_key: Optional[str] = Header(default=None, alias="X-Gemini-API-Key"),
) -> Optional[str]:
    return x_gemini_api_key


@app.post("/generate-exam")
async def generate_exam(
    files: List[UploadFile] = File(..., description="Study materials to extract questions from"),
    api_key: Optional[str] = Depends(get_api_key_header),
    question_count: int = Form(default=10, description="Number of questions to generate"),
    question_types: str = Form(
        default="SINGLE_CHOICE",
        description="Comma-separated question types (e.g. SINGLE_CHOICE,SHORT_ANSWER)"
    ),
    difficulty: str = Form(default="中等", description="Difficulty (简单, 中等 or 困难)"),
    shuffle: bool = Form(default=False, description="Shuffle the final question order"),
    batch_size: Optional[int] = Form(default=None, description="Override questions per shard"),
    request_delay_ms: Optional[int] = Form(default=None, description="Override delay between shards"),
    sharding_mode: Optional[str] = Form(default=None, description="Override mode (SERIAL or PARALLEL)"),
):
    """
    Generate a deduplicated exam from uploaded materials.

    Returns:
        JSON response with questions, progress log and download URL.
    """
    try:
        # 1. Validate inputs
        if not 1 <= question_count <= MAX_QUESTION_COUNT:
            raise HTTPException(
                status_code=422,
                detail=f"Invalid question_count. Allowed: 1-{MAX_QUESTION_COUNT}"
            )
        if difficulty not in ALLOWED_DIFFICULTIES:
            raise HTTPException(status_code=422, detail="Invalid difficulty. Allowed: 简单, 中等, 困难")
        allowed_types = parse_question_types(question_types)

        overrides = {
            "batch_size": batch_size,
            "request_delay_ms": request_delay_ms,
            "sharding_mode": sharding_mode.upper() if sharding_mode else None,
        }
        try:
            defaults = load_performance_config()
            performance = PerformanceConfig(
                **{**defaults.model_dump(), **{k: v for k, v in overrides.items() if v is not None}}
            )
            materials = await read_materials(files)
            request = ExamGenerationRequest(
                materials=materials,
                count=question_count,
                allowed_types=allowed_types,
                difficulty=difficulty,
                shuffle=shuffle,
                performance=performance,
            )
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=f"Invalid configuration: {e.errors()[0]['msg']}")

        # 2. Initialize AI Client
        client = get_client(api_key)

        # 3. Run the sharded pipeline
        progress_log: List[dict] = []
        questions = await generate_exam_questions(
            client,
            request.materials,
            request.count,
            request.allowed_types,
            request.difficulty,
            shuffle=request.shuffle,
            on_log=lambda message, progress: progress_log.append(
                {"message": message, "progress": progress}
            ),
            performance=request.performance,
            search_config=load_search_config(),
        )

        # 4. Prepare metadata
        total_generated = len(questions)
        warning: Optional[str] = None
        if total_generated < question_count:
            warning = (
                f"Generated {total_generated} of {question_count} questions. "
                "Materials may contain fewer matching questions, or duplicates were removed."
            )

        # 5. Generate DOCX
        output_filename = write_question_sheet(questions, title="模拟试卷")

        return {
            "status": "success",
            "message": "Exam generated successfully",
            "questions": [q.model_dump(mode="json") for q in questions],
            "filename": output_filename,
            "download_url": f"/download/{output_filename}",
            "requested_count": question_count,
            "total_generated": total_generated,
            "batches_planned": len(calculate_batches(question_count, request.performance.batch_size)),
            "warning": warning,
            "log": progress_log,
        }

    except HTTPException as e:
        raise e
    except EmptyResponseError as e:
        raise HTTPException(status_code=502, detail=f"Empty AI response: {str(e)}")
    except ValidationError as e:
        # Shard output that does not match the question schema
        raise HTTPException(status_code=502, detail=f"Malformed AI response: {str(e)}")
    except ValueError as e:
        # API Key or configuration errors
        raise HTTPException(status_code=500, detail=f"Configuration error: {str(e)}")
    except Exception as e:
        logger.exception("Error during exam generation")
        raise HTTPException(status_code=500, detail=f"Internal error: {str(e)}")


@app.post("/api/plan")
async def plan_shards(
    question_count: int = Form(..., description="Total questions requested"),
    batch_size: int = Form(default=10, description="Maximum questions per shard"),
):
    """Return the shard plan for a request without calling the AI."""
    try:
        plan = calculate_batches(question_count, batch_size)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"plan": plan, "batches_planned": len(plan)}


@app.post("/api/recommend-types")
async def recommend_types(
    files: List[UploadFile] = File(..., description="Study materials to analyze"),
    api_key: Optional[str] = Depends(get_api_key_header),
):
    """Suggest question types that fit the uploaded materials."""
    try:
        client = get_client(api_key)
    except ValueError as e:
        raise HTTPException(status_code=500, detail=f"Configuration error: {str(e)}")
    materials = await read_materials(files)
    recommended = await recommend_question_types(client, materials)
    return {"question_types": [t.value for t in recommended]}


@app.post("/api/search/test")
async def probe_search(request: SearchTestRequest):
    """Check whether a search provider accepts the given key."""
    ok = await check_search_connection(request.engine, request.api_key)
    return {"engine": request.engine.value, "ok": ok}


@app.post("/api/render-docx")
async def render_docx(request: RenderDocxRequest):
    """Render DOCX from a question list payload and return the file."""
    output_filename = write_question_sheet(request.questions, request.title)

    return FileResponse(
        str(get_runtime_output_dir() / output_filename),
        filename=output_filename,
        media_type=DOCX_MEDIA_TYPE,
    )


@app.get("/download/{filename}")
async def download_file(filename: str):
    """
    Download a generated exam file.

    Args:
        filename: Name of the file to download.

    Returns:
        File response with the .docx file.
    """
    file_path = get_runtime_output_dir() / Path(filename).name

    if not file_path.exists():
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(
        str(file_path),
        filename=filename,
        media_type=DOCX_MEDIA_TYPE,
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "AceMock Exam Engine API"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
