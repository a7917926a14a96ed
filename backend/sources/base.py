"""
Abstract metrics source.
One implementation per business line. Views never see a backing-store
column name: every source maps its own schema into LeadRecord and the
shared value objects.

IMPORTANT: the supabase-py client is synchronous. Every .execute() goes
through `_db(fn)` so it runs in a worker thread and never blocks the loop.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from date_ranges import DateRange
from metrics.models import (
    FinancialData,
    FinancialTrend,
    InstallerStat,
    KPIBundle,
    LeadRecord,
    LeadSourceStat,
    LeaderboardEntry,
    MonthlyActivity,
    RevenueTrendPoint,
    UserProfile,
)
from source_trace import SourceTrace

logger = logging.getLogger(__name__)

# Rows per paged read (PostgREST caps responses at 1000 by default)
PAGE_SIZE = int(os.environ.get("PAGE_SIZE", "1000"))

# Hard ceiling for one paged fetch; hitting it logs and returns what was read
MAX_PAGED_ROWS = int(os.environ.get("MAX_PAGED_ROWS", "50000"))

REP_LEADERBOARD_SIZE = 10


async def _db(fn):
    """Run a synchronous Supabase call in a thread pool to avoid blocking the event loop."""
    return await asyncio.to_thread(fn)


async def fetch_all_pages(
    build_query: Callable[[], Any],
    order_column: str = "id",
    page_size: int = PAGE_SIZE,
    max_rows: int = MAX_PAGED_ROWS,
    label: str = "",
) -> list[dict]:
    """
    Read every row of a query page by page.

    Args:
        build_query: Returns a fresh, fully filtered query (range is applied here).
        order_column: Unique key appended as the last sort key, so separate
            page requests see one stable row order.
        label: Used in the ceiling warning.

    Errors from the backing store propagate to the caller.
    """
    rows: list[dict] = []
    offset = 0
    while True:
        query = build_query()
        result = await _db(
            lambda q=query, start=offset: q.order(order_column)
            .range(start, start + page_size - 1)
            .execute()
        )
        page = result.data or []
        if not page:
            break
        rows.extend(page)
        if len(page) < page_size:
            break
        offset += page_size
        if len(rows) >= max_rows:
            logger.warning(
                f"Paging ceiling reached for {label or 'query'}: "
                f"returning first {max_rows} rows"
            )
            return rows[:max_rows]
    return rows


def apply_date_window(query, column: str, date_range: DateRange, require_present: bool = False):
    """
    Bound `column` to the range. A sentinel start adds no lower bound and an
    open-ended range adds no upper bound. With `require_present`, a range
    left with no bounds still excludes rows where the column is null.
    """
    if date_range.has_lower_bound:
        query = query.gte(column, date_range.start_iso())
    if date_range.has_upper_bound:
        query = query.lte(column, date_range.end_iso())
    if date_range.is_all_time and require_present:
        query = query.not_.is_(column, "null")
    return query


class MetricsSource(ABC):
    """The shared operation set every business line implements."""

    business_line: str = ""
    supports_attribution: bool = True

    async def _guarded(
        self,
        operation: str,
        default_factory: Callable[[], Any],
        fn: Callable[[SourceTrace], Awaitable[Any]],
        **context,
    ):
        """Run an aggregate operation; a backing-store fault yields the safe default."""
        async with SourceTrace(self.business_line, operation, **context) as trace:
            try:
                return await fn(trace)
            except Exception as e:
                logger.error(f"{self.business_line} {operation} failed: {e}")
                trace.record_error(str(e))
                return default_factory()

    @abstractmethod
    async def fetch_leads(
        self, user: UserProfile, date_range: DateRange, name_filter: Optional[str] = None
    ) -> list[LeadRecord]:
        """
        Canonical records created in range, newest first, after access scoping.

        Raises:
            AccessDeniedError: the policy denies this user.
            Exception: backing-store faults are re-raised, not defaulted.
        """

    @abstractmethod
    async def fetch_kpi_metrics(
        self, user: UserProfile, date_range: DateRange, name_filter: Optional[str] = None
    ) -> KPIBundle:
        """Lead/survey/install/paid counts and revenue for the range."""

    @abstractmethod
    async def fetch_leaderboard_stats(self) -> list[LeaderboardEntry]:
        """All-time field-rep ranking by paid count, top 10."""

    @abstractmethod
    async def fetch_account_manager_leaderboard(
        self, date_range: Optional[DateRange] = None
    ) -> list[LeaderboardEntry]:
        """Full account-manager ranking, optionally limited to leads created in range."""

    @abstractmethod
    async def fetch_six_month_trend(self, now: Optional[datetime] = None) -> list[MonthlyActivity]:
        """Six monthly buckets; each event counted in its own month."""

    @abstractmethod
    async def fetch_revenue_trend(self, now: Optional[datetime] = None) -> list[RevenueTrendPoint]:
        """Six monthly buckets of paid revenue."""

    @abstractmethod
    async def fetch_lead_source_stats(self, date_range: DateRange) -> list[LeadSourceStat]:
        """Volume share and conversion per lead-source label."""

    @abstractmethod
    async def fetch_installer_performance(self, date_range: DateRange) -> list[InstallerStat]:
        """Funnel counts, revenue and clamped stage rates per installer."""

    @abstractmethod
    async def fetch_financial_data(self, date_range: DateRange) -> FinancialData:
        """Revenue vs. shared expense ledger, with per-channel cost metrics."""

    @abstractmethod
    async def fetch_financial_trend(self, now: Optional[datetime] = None) -> list[FinancialTrend]:
        """Six monthly buckets of revenue, expenses and net profit."""
