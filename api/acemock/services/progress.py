"""
Progress Reporter
Forwards pipeline messages to the caller with a never-decreasing percentage.
"""
import logging
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]


class ProgressReporter:
    """
    Wraps an optional ``on_log(message, progress)`` callback.

    Progress is clamped to [0, 100] and to the highest value reported so far,
    so out-of-order reports from concurrent shards cannot move it backwards.
    """

    def __init__(self, on_log: Optional[ProgressCallback] = None):
        self._on_log = on_log
        self.progress = 0
        self.history: List[Tuple[str, int]] = []

    def __call__(self, message: str, progress: Optional[int] = None) -> None:
        if progress is not None:
            self.progress = max(self.progress, min(100, max(0, int(progress))))
        logger.info("[%3d%%] %s", self.progress, message)
        self.history.append((message, self.progress))
        if self._on_log:
            self._on_log(message, self.progress)

    def sink(self) -> Callable[[str], None]:
        """A message-only sink that reports at the current progress."""
        return lambda message: self(message)
