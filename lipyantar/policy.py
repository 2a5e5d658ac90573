"""Error handling policy implementation."""

from __future__ import annotations

from collections import deque
from typing import Any, Deque, List, Optional

import structlog

from .errors import ErrorCategory, ErrorRecord, ErrorTracker

logger = structlog.get_logger(__name__)


class ErrorPolicy:
    """Records handled failures for diagnostics without ever aborting.

    Nothing in this system is fatal to the host page: every failure leaves
    the original text in place and is only logged. Repeated failures of the
    same category (or too many overall) escalate to a single louder warning.
    Only the newest ``max_records`` records are kept; ``handled`` counts
    every error ever handled.
    """

    MAX_RECORDS = 200

    def __init__(self, max_records: int = MAX_RECORDS) -> None:
        self.records: Deque[ErrorRecord] = deque(maxlen=max_records)
        self.handled = 0
        self.tracker = ErrorTracker()

    def record_success(self) -> None:
        """Reset consecutive counters after successful work."""

        self.tracker.reset_consecutive()

    def handle_error(
        self,
        category: ErrorCategory,
        message: str,
        details: Optional[str] = None,
        **context: Any,
    ) -> ErrorRecord:
        """Record and log an error, escalating when thresholds are reached."""

        record = ErrorRecord(category=category, message=message, details=details)
        self.records.append(record)
        self.handled += 1
        consecutive, total, threshold = self.tracker.register(category)

        logger.warning(
            message,
            category=category.name.lower(),
            details=details,
            consecutive=consecutive,
            total=total,
            **context,
        )

        if threshold:
            if consecutive >= self.tracker.CONSECUTIVE_LIMIT:
                logger.error(
                    "repeated_failures",
                    category=category.name.lower(),
                    consecutive=consecutive,
                )
            else:
                logger.error("error_budget_exhausted", total=total)

        return record

    @property
    def messages(self) -> List[str]:
        return [record.message for record in self.records]

    def messages_since(self, mark: int) -> List[str]:
        """Messages of errors handled after ``handled`` was ``mark``."""

        count = min(self.handled - mark, len(self.records))
        if count <= 0:
            return []
        return [record.message for record in list(self.records)[-count:]]

    def reset(self) -> None:
        self.records.clear()
        self.handled = 0
        self.tracker = ErrorTracker()
