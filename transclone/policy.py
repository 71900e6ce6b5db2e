"""Error recording for batch operations."""

from __future__ import annotations

import sys
from typing import List, Optional

from .errors import ErrorCategory, ErrorRecord


class ErrorPolicy:
    """Collects handled errors so a batch can report them without stopping.

    Batch operations never abort on a single item; every problem is recorded
    here and surfaced in the final report. Messages are echoed to stderr when
    ``verbose`` is set.
    """

    def __init__(self, *, verbose: bool = False) -> None:
        self.verbose = verbose
        self.records: List[ErrorRecord] = []

    def handle_error(
        self,
        category: ErrorCategory,
        message: str,
        details: Optional[str] = None,
    ) -> ErrorRecord:
        record = ErrorRecord(category=category, message=message, details=details)
        self.records.append(record)
        if self.verbose:
            suffix = f" ({details})" if details else ""
            print(f"[transclone] {message}{suffix}", file=sys.stderr)
        return record

    def count(self, category: ErrorCategory) -> int:
        return sum(1 for record in self.records if record.category == category)
