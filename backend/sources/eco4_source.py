"""
ECO4 metrics source (public.ECO4_Leads, current schema revision).

Schema notes:
  - No rep or account-manager columns: only admins may read, and rep
    leaderboards are always empty. No attribution is guessed.
  - Every funnel stage has its own date column (Lead_Created_Date,
    Survey_Date, Install_Date, Valour_Paid_Date), so every count is an
    event count on its own column.
  - Overall_Status uses "PAID"; mapped to the canonical "Paid".
  - Payment_Total_Net arrives as a number or as a "£1,234.50" string.
  - Survey completion is not tracked; Survey_Date stands in for both
    booked and completed, and a missing creation date falls back to the
    paid date.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Optional

from access_policy import AccessDeniedError, scope_filter
from business_line import BusinessLine
from date_ranges import DateRange, parse_timestamp, six_month_window_start
from metrics import aggregator, trends
from metrics.aggregator import optional_currency
from metrics.models import (
    PAID_STATUS,
    FinancialData,
    KPIBundle,
    LeadRecord,
    SourceBreakdownItem,
    UserProfile,
)
from source_trace import SourceTrace
from sources.base import MetricsSource, _db, apply_date_window, fetch_all_pages
from sources.expenses import ExpenseLedger

logger = logging.getLogger(__name__)

TABLE = "ECO4_Leads"
ECO4_PAID_STATUS = "PAID"
DEFAULT_STATUS = "Pending"
SOURCE_LABEL = "ECO4"

CREATED = "Lead_Created_Date"
SURVEYED = "Survey_Date"
INSTALLED = "Install_Date"
PAID = "Valour_Paid_Date"


class ECO4Source(MetricsSource):
    business_line = BusinessLine.ECO4
    supports_attribution = False

    def __init__(self, client, ledger: ExpenseLedger):
        """
        Args:
            client: supabase Client for the ECO4 project.
            ledger: Shared expense ledger reader (lives in the Solar project).
        """
        self.client = client
        self.ledger = ledger

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def _table(self):
        return self.client.table(TABLE)

    def _windowed(self, query, date_column: str, date_range: DateRange, paid_only: bool = False):
        # All-time creation queries are unfiltered; event columns still require a value
        query = apply_date_window(
            query, date_column, date_range, require_present=date_column != CREATED
        )
        if paid_only:
            query = query.eq("Overall_Status", ECO4_PAID_STATUS)
        return query

    async def _rows(
        self, columns: str, date_column: str, date_range: DateRange, paid_only: bool = False
    ) -> list[dict]:
        return await fetch_all_pages(
            lambda: self._windowed(self._table().select(columns), date_column, date_range, paid_only),
            label=f"{TABLE}.{date_column}",
        )

    async def _count(self, date_column: str, date_range: DateRange, paid_only: bool = False) -> int:
        query = self._windowed(
            self._table().select("*", count="exact"), date_column, date_range, paid_only
        )
        result = await _db(lambda: query.limit(0).execute())
        return result.count or 0

    async def _rows_since(self, columns: str, date_column: str, start: datetime,
                          paid_only: bool = False) -> list[dict]:
        def build():
            query = self._table().select(columns).gte(date_column, start.isoformat())
            if paid_only:
                query = query.eq("Overall_Status", ECO4_PAID_STATUS)
            return query
        return await fetch_all_pages(build, label=f"{TABLE}.{date_column}")

    @staticmethod
    def map_row(row: dict) -> LeadRecord:
        status = row.get("Overall_Status") or DEFAULT_STATUS
        if status == ECO4_PAID_STATUS:
            status = PAID_STATUS
        survey_date = parse_timestamp(row.get(SURVEYED))
        return LeadRecord(
            id=str(row["id"]) if row.get("id") is not None else str(uuid.uuid4()),
            created_at=parse_timestamp(row.get(CREATED) or row.get(PAID)),
            customer_name=row.get("Customer_Name") or row.get("Address") or "ECO4 Customer",
            customer_tel=row.get("Customer_Phone"),
            customer_email=row.get("Customer_Email"),
            address=row.get("Address"),
            postcode=row.get("Postcode"),
            lead_source=row.get("Lead_Generation") or SOURCE_LABEL,
            installer=row.get("Current_Installer"),
            status=status,
            survey_booked_date=survey_date,
            survey_complete_date=survey_date,
            install_booked_date=parse_timestamp(row.get(INSTALLED)),
            paid_date=parse_timestamp(row.get(PAID)),
            lead_revenue=optional_currency(row.get("Payment_Total_Net")),
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def fetch_leads(
        self, user: UserProfile, date_range: DateRange, name_filter: Optional[str] = None
    ) -> list[LeadRecord]:
        spec = scope_filter(user, name_filter, supports_attribution=self.supports_attribution)
        if spec.denied:
            raise AccessDeniedError(f"ECO4 leads are admin-only (role '{user.role}')")
        if spec.is_scoped:
            # No rep column to narrow by: nothing is attributable to that rep
            return []

        async with SourceTrace(self.business_line, "fetch_leads", role=user.role) as trace:
            rows = await fetch_all_pages(
                lambda: self._windowed(self._table().select("*"), CREATED, date_range)
                .order(CREATED, desc=True),
                label=TABLE,
            )
            trace.record_rows(len(rows))
            return [self.map_row(r) for r in rows]

    async def fetch_kpi_metrics(
        self, user: UserProfile, date_range: DateRange, name_filter: Optional[str] = None
    ) -> KPIBundle:
        spec = scope_filter(user, name_filter, supports_attribution=self.supports_attribution)
        if spec.denied or spec.is_scoped:
            return KPIBundle()

        async def _run(trace):
            leads, surveys, installs, paid, revenue_rows = await asyncio.gather(
                self._count(CREATED, date_range),
                self._count(SURVEYED, date_range),
                self._count(INSTALLED, date_range),
                self._count(PAID, date_range, paid_only=True),
                self._rows("Payment_Total_Net", PAID, date_range, paid_only=True),
            )
            trace.record_rows(len(revenue_rows))
            return KPIBundle(
                leads_count=leads,
                surveys_count=surveys,
                installs_count=installs,
                paid_count=paid,
                revenue=aggregator.total_revenue(r.get("Payment_Total_Net") for r in revenue_rows),
            )

        return await self._guarded("fetch_kpi_metrics", KPIBundle, _run, role=user.role)

    async def fetch_leaderboard_stats(self):
        logger.debug("ECO4 has no field-rep column; rep leaderboard is empty")
        return []

    async def fetch_account_manager_leaderboard(self, date_range: Optional[DateRange] = None):
        logger.debug("ECO4 has no account-manager column; manager leaderboard is empty")
        return []

    async def fetch_six_month_trend(self, now: Optional[datetime] = None):
        async def _run(trace):
            start = six_month_window_start(now)
            leads, surveys, installs, paid = await asyncio.gather(
                self._rows_since(CREATED, CREATED, start),
                self._rows_since(SURVEYED, SURVEYED, start),
                self._rows_since(INSTALLED, INSTALLED, start),
                self._rows_since(PAID, PAID, start, paid_only=True),
            )
            trace.record_rows(len(leads) + len(surveys) + len(installs) + len(paid))
            return trends.activity_trend(
                lead_dates=[r.get(CREATED) for r in leads],
                survey_dates=[r.get(SURVEYED) for r in surveys],
                install_dates=[r.get(INSTALLED) for r in installs],
                paid_dates=[r.get(PAID) for r in paid],
                now=now,
            )

        return await self._guarded(
            "fetch_six_month_trend",
            lambda: trends.activity_trend([], [], [], [], now=now),
            _run,
        )

    async def fetch_revenue_trend(self, now: Optional[datetime] = None):
        async def _run(trace):
            rows = await self._rows_since(
                f"{PAID}, Payment_Total_Net", PAID, six_month_window_start(now), paid_only=True
            )
            trace.record_rows(len(rows))
            return trends.revenue_trend(
                ((r.get(PAID), r.get("Payment_Total_Net")) for r in rows), now=now
            )

        return await self._guarded(
            "fetch_revenue_trend", lambda: trends.revenue_trend([], now=now), _run
        )

    async def fetch_lead_source_stats(self, date_range: DateRange):
        async def _run(trace):
            leads, paid = await asyncio.gather(
                self._rows("Lead_Generation", CREATED, date_range),
                self._rows("Lead_Generation", PAID, date_range, paid_only=True),
            )
            trace.record_rows(len(leads) + len(paid))
            return aggregator.lead_source_stats(
                lead_sources=[r.get("Lead_Generation") for r in leads],
                paid_sources=[r.get("Lead_Generation") for r in paid],
            )

        return await self._guarded("fetch_lead_source_stats", list, _run)

    async def fetch_installer_performance(self, date_range: DateRange):
        async def _run(trace):
            leads, surveys, installs, paid = await asyncio.gather(
                self._rows("Current_Installer", CREATED, date_range),
                self._rows("Current_Installer", SURVEYED, date_range),
                self._rows("Current_Installer", INSTALLED, date_range),
                self._rows("Current_Installer, Payment_Total_Net", PAID, date_range, paid_only=True),
            )
            trace.record_rows(len(leads) + len(surveys) + len(installs) + len(paid))
            return aggregator.installer_stats(
                lead_installers=[r.get("Current_Installer") for r in leads],
                survey_installers=[r.get("Current_Installer") for r in surveys],
                install_installers=[r.get("Current_Installer") for r in installs],
                paid_rows=[(r.get("Current_Installer"), r.get("Payment_Total_Net")) for r in paid],
            )

        return await self._guarded("fetch_installer_performance", list, _run)

    async def fetch_financial_data(self, date_range: DateRange) -> FinancialData:
        async def _run(trace):
            expenses, leads, surveys, installs, paid = await asyncio.gather(
                self.ledger.fetch_expenses(date_range),
                self._rows("id", CREATED, date_range),
                self._rows("id", SURVEYED, date_range),
                self._rows("id", INSTALLED, date_range),
                self._rows("Overall_Status, Payment_Total_Net", PAID, date_range, paid_only=True),
            )
            trace.record_rows(len(expenses) + len(leads) + len(surveys) + len(installs) + len(paid))

            revenue = aggregator.total_revenue(r.get("Payment_Total_Net") for r in paid)
            total_expenses = aggregator.sum_expenses(expenses)
            # One channel: the whole ledger is charged against ECO4 volume
            metrics = aggregator.cost_per_metric(total_expenses, len(leads), len(surveys), len(installs))

            return FinancialData(
                summary=aggregator.financial_summary(revenue, total_expenses),
                field_metrics=metrics,
                online_metrics=metrics.model_copy(),
                expense_breakdown=aggregator.expense_breakdown(expenses),
                source_breakdown=[
                    SourceBreakdownItem(
                        source=SOURCE_LABEL,
                        leads=len(leads),
                        paid=len(paid),
                        revenue=revenue,
                        conversion=aggregator.conversion_rate(len(paid), len(leads), clamp=True),
                    )
                ],
            )

        return await self._guarded("fetch_financial_data", FinancialData, _run)

    async def fetch_financial_trend(self, now: Optional[datetime] = None):
        async def _run(trace):
            start = six_month_window_start(now)
            paid, expenses = await asyncio.gather(
                self._rows_since(f"{PAID}, Payment_Total_Net", PAID, start, paid_only=True),
                self.ledger.fetch_expenses_since(start),
            )
            trace.record_rows(len(paid) + len(expenses))
            return trends.financial_trend(
                paid_rows=((r.get(PAID), r.get("Payment_Total_Net")) for r in paid),
                expense_rows=((e.transaction_date, e.amount) for e in expenses),
                now=now,
            )

        return await self._guarded(
            "fetch_financial_trend", lambda: trends.financial_trend([], [], now=now), _run
        )
