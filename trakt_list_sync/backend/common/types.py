from __future__ import annotations

from enum import Enum
from typing import Literal



LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]
LogFormat = Literal["text", "json"]


class SyncOutcome(str, Enum):
    """Overall classification of a sync pass, mapped onto process exit codes."""

    NOOP = "noop"
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    TOTAL_FAILURE = "total_failure"
    PRECONDITION_FAILED = "precondition_failed"

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self]


_EXIT_CODES = {
    SyncOutcome.NOOP: 0,
    SyncOutcome.SUCCESS: 0,
    SyncOutcome.PARTIAL_FAILURE: 1,
    SyncOutcome.TOTAL_FAILURE: 2,
    SyncOutcome.PRECONDITION_FAILED: 3,
}
