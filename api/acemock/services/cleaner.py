"""
Question Text Cleaner
Strips enumeration prefixes ("1.", "Q3:", "（1）", "题目：" ...) from question text.
"""
import re

# "Q3", "Question 3", "题目3", "案例3" ... followed by separators
_LABELLED_NUMBER = re.compile(
    r"^(Q|Question|题目|问题|Case|案例|习题)\s*\d+[\s.．:：\-、]*\s*",
    re.IGNORECASE,
)
# "(1)", "（1）", "【1】", "[1]" with an optional trailing separator
_BRACKETED_NUMBER = re.compile(r"^[(（【\[]\d+[)）】\]]\s*[、.．:：\-]?\s*")
# "1.", "1、", "1)", "1：" ...
_BARE_NUMBER = re.compile(r"^\d+\s*[、.．:：)）\-](?!\d)\s*")
_CIRCLED_ONE = re.compile(r"^①\s*")
# Residual label left behind once a number was stripped
_BARE_LABEL = re.compile(r"^(题目|问题|Question)[:：]\s*", re.IGNORECASE)

_PASSES = (
    _LABELLED_NUMBER,
    _BRACKETED_NUMBER,
    _BARE_NUMBER,
    _CIRCLED_ONE,
    _BARE_LABEL,
)


def _strip_once(text: str) -> str:
    cleaned = text.strip()
    for pattern in _PASSES:
        cleaned = pattern.sub("", cleaned, count=1)
    return cleaned.strip()


def clean_question_prefix(text: str) -> str:
    """
    Removes leading enumeration and label prefixes from question text.

    Passes run in a fixed order (numbered prefixes before bare labels) and are
    repeated until the text stops changing, so cleaning is idempotent.
    """
    cleaned = _strip_once(text)
    while True:
        again = _strip_once(cleaned)
        if again == cleaned:
            return cleaned
        cleaned = again
