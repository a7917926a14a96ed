"""
Source Trace Tests
==================
Verifies that one structured record is logged per operation, that failures
are recorded at ERROR, and that exceptions are never swallowed.
"""

import logging
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from source_trace import SourceTrace


def _traces(caplog):
    return [r.trace for r in caplog.records if hasattr(r, "trace")]


class TestSourceTrace:

    @pytest.mark.asyncio
    async def test_success_record(self, caplog):
        with caplog.at_level(logging.INFO, logger="source_trace"):
            async with SourceTrace("solar", "fetch_leads", role="admin") as trace:
                trace.record_rows(12)
        [record] = _traces(caplog)
        assert record["business_line"] == "solar"
        assert record["operation"] == "fetch_leads"
        assert record["rows"] == 12
        assert record["success"] is True
        assert record["role"] == "admin"
        assert record["duration_ms"] >= 0

    @pytest.mark.asyncio
    async def test_exception_propagates_and_is_recorded(self, caplog):
        with caplog.at_level(logging.INFO, logger="source_trace"):
            with pytest.raises(RuntimeError):
                async with SourceTrace("eco4", "fetch_leads"):
                    raise RuntimeError("connection reset")
        [record] = _traces(caplog)
        assert record["success"] is False
        assert record["error_message"] == "connection reset"
        assert caplog.records[-1].levelno == logging.ERROR

    @pytest.mark.asyncio
    async def test_recovered_error(self, caplog):
        with caplog.at_level(logging.INFO, logger="source_trace"):
            async with SourceTrace("solar", "fetch_kpi_metrics") as trace:
                trace.record_error("timeout")
        [record] = _traces(caplog)
        assert record["success"] is False
        assert record["error_message"] == "timeout"
