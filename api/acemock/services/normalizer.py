"""
Answer Normalizer
Turns the backend's string-encoded answers into the shape each question type requires.
"""
import json
import logging
import re
from typing import List, Union

from acemock.schemas import LIST_ANSWER_TYPES, Question, QuestionType, RawQuestion

logger = logging.getLogger(__name__)

_LIST_SEPARATORS = re.compile(r"[,，、]")


def _split_answer(raw: str) -> List[str]:
    return [piece.strip() for piece in _LIST_SEPARATORS.split(raw)]


def normalize_answer(
    question_type: QuestionType,
    raw_answer: Union[str, List[str]],
) -> Union[str, List[str]]:
    """
    Coerces a raw answer into a list or a string depending on question type.

    List types (multi-choice, ordering, matching, fill-in-blank) accept a JSON
    array string, a comma separated string, or a bare single value. A value
    without "[" or "," is one item even if it contains "，" or "、".
    Never raises: unparsable input falls back to separator splitting.
    """
    if question_type not in LIST_ANSWER_TYPES:
        if isinstance(raw_answer, list):
            return ", ".join(str(item) for item in raw_answer)
        return raw_answer

    if isinstance(raw_answer, list):
        return [str(item) for item in raw_answer]

    text = raw_answer.strip()
    if not text:
        return []

    if text.startswith("[") or "," in text:
        try:
            parsed = json.loads(text)
        except ValueError:
            logger.warning("Answer for %s is not valid JSON, splitting: %r", question_type.value, text)
            return _split_answer(text)
        if isinstance(parsed, list):
            return [item if isinstance(item, str) else json.dumps(item, ensure_ascii=False) for item in parsed]
        logger.warning("Answer for %s parsed to %s, splitting", question_type.value, type(parsed).__name__)
        return _split_answer(text)

    return [text]


def to_question(raw: RawQuestion, question_id: str) -> Question:
    """Builds a well-typed Question from a backend record."""
    return Question(
        id=question_id,
        type=raw.type,
        question_text=raw.question_text,
        options=raw.options or [],
        correct_answer=normalize_answer(raw.type, raw.correct_answer),
        explanation=raw.explanation or "",
    )
