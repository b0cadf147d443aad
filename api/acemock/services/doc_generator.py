"""
Document Generator Service
Renders a generated question list as a .docx exam sheet with an answer key.
"""
import logging
import re
from typing import List

from docx import Document
from docx.shared import Pt, Inches

from acemock.schemas import Question, QuestionType

logger = logging.getLogger(__name__)

OPTION_LABELS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
ANSWER_LINE = "........................................................"
OPEN_TYPES = {
    QuestionType.SHORT_ANSWER,
    QuestionType.NOUN_EXPLANATION,
    QuestionType.ANALYSIS,
    QuestionType.FLASHCARD,
}


def _indented(doc: Document, text: str) -> None:
    p_opt = doc.add_paragraph()
    p_opt.paragraph_format.left_indent = Inches(0.5)
    p_opt.add_run(text)


def _add_choices(doc: Document, question: Question) -> None:
    for label, option in zip(OPTION_LABELS, question.options):
        text = option if re.match(rf"\s*{label}\s*[.、．)）:：]", option) else f"{label}. {option}"
        _indented(doc, text)


def _add_true_false(doc: Document) -> None:
    for label in ("正确", "错误"):
        _indented(doc, f"( ) {label}")


def _add_items(doc: Document, question: Question) -> None:
    for option in question.options:
        _indented(doc, f"• {option}")


def _add_answer_lines(doc: Document, lines: int = 1) -> None:
    for _ in range(lines):
        _indented(doc, ANSWER_LINE)


def format_answer(question: Question) -> str:
    """Flattens a list answer with full-width semicolons for the answer key."""
    if isinstance(question.correct_answer, list):
        return "；".join(question.correct_answer)
    return question.correct_answer


def generate_docx(questions: List[Question], output_path: str, title: str = "模拟试卷") -> None:
    """
    Generates a .docx file from a list of questions.

    Args:
        questions: Final (deduplicated) question list.
        output_path: Absolute path where the .docx file should be saved.
        title: Document heading and core-properties title.

    Raises:
        Exception: If file generation fails.
    """
    logger.info("Generating DOCX at %s", output_path)
    doc = Document()

    core_properties = doc.core_properties
    core_properties.title = title

    style = doc.styles['Normal']
    style.font.size = Pt(12)

    heading = doc.add_heading(title, 0)
    heading.alignment = 1  # Center

    p_info = doc.add_paragraph()
    p_info.alignment = 1  # Center
    p_info.add_run(f"共 {len(questions)} 题").bold = True

    doc.add_paragraph("_" * 50).alignment = 1  # Divider

    for number, question in enumerate(questions, start=1):
        p = doc.add_paragraph()
        p.paragraph_format.space_before = Pt(12)
        run = p.add_run(f"{number}. {question.question_text}")
        run.bold = True

        if question.type in (QuestionType.SINGLE_CHOICE, QuestionType.MULTI_CHOICE):
            _add_choices(doc, question)
        elif question.type == QuestionType.TRUE_FALSE:
            _add_true_false(doc)
        elif question.type in (QuestionType.MATCHING, QuestionType.ORDERING):
            _add_items(doc, question)
        elif question.type == QuestionType.FILL_IN_BLANK:
            continue
        elif question.type in OPEN_TYPES:
            _add_answer_lines(doc, lines=3 if question.type == QuestionType.ANALYSIS else 1)

    # Answer Key (New Page)
    doc.add_page_break()
    doc.add_heading("参考答案 / Answer Key", level=1)

    table = doc.add_table(rows=1, cols=3)
    table.style = 'Table Grid'
    hdr_cells = table.rows[0].cells
    hdr_cells[0].text = '题号'
    hdr_cells[1].text = '答案'
    hdr_cells[2].text = '解析'

    for number, question in enumerate(questions, start=1):
        row_cells = table.add_row().cells
        row_cells[0].text = str(number)
        row_cells[1].text = format_answer(question)
        row_cells[2].text = question.explanation or "-"

    doc.save(output_path)
    logger.info("DOCX saved: %s", output_path)
