"""
Fingerprint Deduplicator
Collapses near-duplicate questions emitted by independent shards.
"""
import logging
import re
from typing import List, Optional

from acemock.schemas import DedupConfig, Question

logger = logging.getLogger(__name__)

# Everything except CJK ideographs and ASCII letters/digits
_NON_FINGERPRINT_CHARS = re.compile(r"[^一-鿿a-zA-Z0-9]")


def fingerprint(text: str) -> str:
    """Reduces question text to CJK ideographs and ASCII alphanumerics."""
    return _NON_FINGERPRINT_CHARS.sub("", text)


def is_duplicate(candidate: str, existing: str, config: DedupConfig) -> bool:
    """
    Compares two fingerprints with the exact, inclusion and prefix rules.

    The fuzzy rules only apply when both fingerprints are longer than
    ``config.min_fuzzy_length`` so short items such as "名词解释" survive.
    """
    if candidate == existing:
        return True

    floor = config.min_fuzzy_length
    if len(candidate) <= floor or len(existing) <= floor:
        return False

    if candidate in existing or existing in candidate:
        return True

    window = config.prefix_length
    return candidate[:window] == existing[:window]


def deduplicate_questions(
    questions: List[Question],
    config: Optional[DedupConfig] = None,
) -> List[Question]:
    """
    Streams questions in order, keeping each one unless it matches an
    already accepted fingerprint. Items with an empty fingerprint are dropped.

    The scan is order-dependent: which of two near-duplicates survives is
    decided by input order.
    """
    config = config or DedupConfig()
    accepted: List[Question] = []
    accepted_fingerprints: List[str] = []

    for question in questions:
        current = fingerprint(question.question_text)
        if not current:
            logger.info("Dropping question %s with empty text", question.id)
            continue

        if any(is_duplicate(current, existing, config) for existing in accepted_fingerprints):
            logger.info("Dropping duplicate question %s", question.id)
            continue

        accepted.append(question)
        accepted_fingerprints.append(current)

    return accepted
