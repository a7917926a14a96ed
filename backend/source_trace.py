"""
Source Trace: observability context manager for metrics-source operations.
Emits one structured log record per operation at the source boundary.
Tracing failures never break the operation and never swallow its errors.
"""

import logging
import time
from uuid import uuid4

logger = logging.getLogger(__name__)


class SourceTrace:
    """Async context manager wrapping one adapter operation."""

    def __init__(self, business_line: str, operation: str, **context):
        self.business_line = business_line
        self.operation = operation
        self.context = context
        self.request_id = str(uuid4())
        self.rows = 0
        self.success = True
        self.error_message = None
        self._start = 0.0

    async def __aenter__(self):
        self._start = time.monotonic()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        duration_ms = int((time.monotonic() - self._start) * 1000)

        if exc_type is not None:
            self.success = False
            if not self.error_message:
                self.error_message = str(exc_val)[:500] if exc_val else exc_type.__name__

        try:
            self._emit(duration_ms)
        except Exception as e:
            logger.debug(f"Source trace emit failed: {e}")

        return False

    def record_rows(self, count: int):
        self.rows += count

    def record_error(self, error_message: str):
        """Mark the trace failed for errors the operation recovers from itself."""
        self.success = False
        self.error_message = str(error_message)[:500]

    def as_dict(self, duration_ms: int) -> dict:
        return {
            "request_id": self.request_id,
            "business_line": self.business_line,
            "operation": self.operation,
            "rows": self.rows,
            "duration_ms": duration_ms,
            "success": self.success,
            "error_message": self.error_message,
            **self.context,
        }

    def _emit(self, duration_ms: int):
        level = logging.INFO if self.success else logging.ERROR
        logger.log(
            level,
            "%s.%s rows=%d duration_ms=%d success=%s",
            self.business_line, self.operation, self.rows, duration_ms, self.success,
            extra={"trace": self.as_dict(duration_ms)},
        )
