"""
Solar metrics source (solar.solar_leads).

Schema notes:
  - One row per lead, PascalCase columns (Created_At, Field_Rep, Paid_Date, ...)
  - Status vocabulary uses "Paid" for settled deals
  - Lead_Revenue / Commission_Amount are numeric

KPI semantics: leads, surveys and installs are cohort counts over leads
created in range; paid count and revenue are event counts over leads whose
Paid_Date falls in range (money is attributed to the month it moved).
"""

import asyncio
from datetime import datetime
from typing import Optional

from access_policy import AccessDeniedError, Assignment, FilterSpec, scope_filter
from business_line import BusinessLine
from date_ranges import DateRange, parse_timestamp, six_month_window_start
from metrics import aggregator, trends
from metrics.aggregator import FIELD_CHANNEL, ONLINE_CHANNEL, optional_currency
from metrics.models import (
    PAID_STATUS,
    FinancialData,
    KPIBundle,
    LeadRecord,
    UserProfile,
)
from source_trace import SourceTrace
from sources.base import (
    REP_LEADERBOARD_SIZE,
    MetricsSource,
    apply_date_window,
    fetch_all_pages,
)
from sources.expenses import ExpenseLedger

ASSIGNMENT_COLUMNS = {
    Assignment.FIELD_REP: "Field_Rep",
    Assignment.ACCOUNT_MANAGER: "Account_Manager",
}

FUNNEL_COLUMNS = "Created_At, Lead_Source, Installer, Status, Survey_Booked_Date, Install_Booked_Date, Paid_Date, Lead_Revenue"


class SolarSource(MetricsSource):
    business_line = BusinessLine.SOLAR
    supports_attribution = True

    def __init__(self, client, ledger: ExpenseLedger):
        """
        Args:
            client: supabase Client for the Solar project (schemas solar + finances).
            ledger: Shared expense ledger reader.
        """
        self.client = client
        self.ledger = ledger

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def _leads(self, columns: str = "*"):
        return self.client.schema("solar").table("solar_leads").select(columns)

    @staticmethod
    def _apply_scope(query, spec: FilterSpec):
        if spec.is_scoped:
            return query.eq(ASSIGNMENT_COLUMNS[spec.field], spec.value)
        return query

    async def _created_in(
        self, columns: str, date_range: DateRange, spec: Optional[FilterSpec] = None
    ) -> list[dict]:
        def build():
            query = apply_date_window(self._leads(columns), "Created_At", date_range)
            return self._apply_scope(query, spec) if spec else query
        return await fetch_all_pages(build, label="solar.solar_leads")

    async def _paid_in(
        self, columns: str, date_range: DateRange, spec: Optional[FilterSpec] = None
    ) -> list[dict]:
        def build():
            query = self._leads(columns).eq("Status", PAID_STATUS)
            query = apply_date_window(query, "Paid_Date", date_range, require_present=True)
            return self._apply_scope(query, spec) if spec else query
        return await fetch_all_pages(build, label="solar.solar_leads")

    async def _paid_since(self, start: datetime) -> list[dict]:
        return await fetch_all_pages(
            lambda: self._leads("Paid_Date, Lead_Revenue, Status")
            .eq("Status", PAID_STATUS)
            .gte("Paid_Date", start.isoformat())
            .not_.is_("Paid_Date", "null"),
            label="solar.solar_leads",
        )

    @staticmethod
    def map_row(row: dict) -> LeadRecord:
        return LeadRecord(
            id=str(row.get("id") or ""),
            created_at=parse_timestamp(row.get("Created_At")),
            customer_name=row.get("Customer_Name"),
            customer_tel=row.get("Customer_Tel"),
            customer_email=row.get("Customer_Email"),
            address=row.get("First_Line_Of_Address"),
            postcode=row.get("Postcode"),
            property_type=row.get("Property_Type"),
            lead_source=row.get("Lead_Source"),
            field_rep=row.get("Field_Rep"),
            account_manager=row.get("Account_Manager"),
            installer=row.get("Installer"),
            status=row.get("Status"),
            survey_booked_date=parse_timestamp(row.get("Survey_Booked_Date")),
            survey_complete_date=parse_timestamp(row.get("Survey_Complete_Date")),
            install_booked_date=parse_timestamp(row.get("Install_Booked_Date")),
            paid_date=parse_timestamp(row.get("Paid_Date")),
            lead_cost=optional_currency(row.get("Lead_Cost")),
            lead_revenue=optional_currency(row.get("Lead_Revenue")),
            commission_amount=optional_currency(row.get("Commission_Amount")),
            commission_paid=row.get("Commission_Paid"),
            commission_paid_date=parse_timestamp(row.get("Commission_Paid_Date")),
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def fetch_leads(
        self, user: UserProfile, date_range: DateRange, name_filter: Optional[str] = None
    ) -> list[LeadRecord]:
        spec = scope_filter(user, name_filter)
        if spec.denied:
            raise AccessDeniedError(f"No lead access for role '{user.role}'")

        async with SourceTrace(self.business_line, "fetch_leads", role=user.role) as trace:
            rows = await fetch_all_pages(
                lambda: self._apply_scope(
                    apply_date_window(self._leads(), "Created_At", date_range), spec
                ).order("Created_At", desc=True),
                label="solar.solar_leads",
            )
            trace.record_rows(len(rows))
            return [self.map_row(r) for r in rows]

    async def fetch_kpi_metrics(
        self, user: UserProfile, date_range: DateRange, name_filter: Optional[str] = None
    ) -> KPIBundle:
        spec = scope_filter(user, name_filter)
        if spec.denied:
            return KPIBundle()

        async def _run(trace):
            cohort_rows, paid_rows = await asyncio.gather(
                self._created_in(FUNNEL_COLUMNS, date_range, spec),
                self._paid_in("Paid_Date, Lead_Revenue, Status", date_range, spec),
            )
            trace.record_rows(len(cohort_rows) + len(paid_rows))
            cohort = aggregator.cohort_funnel(self.map_row(r) for r in cohort_rows)
            return KPIBundle(
                leads_count=cohort.leads_count,
                surveys_count=cohort.surveys_count,
                installs_count=cohort.installs_count,
                paid_count=len(paid_rows),
                revenue=aggregator.total_revenue(r.get("Lead_Revenue") for r in paid_rows),
            )

        return await self._guarded("fetch_kpi_metrics", KPIBundle, _run, role=user.role)

    async def fetch_leaderboard_stats(self):
        async def _run(trace):
            rows = await fetch_all_pages(
                lambda: self._leads("Field_Rep, Status, Install_Booked_Date, Paid_Date")
                .not_.is_("Field_Rep", "null"),
                label="solar.solar_leads",
            )
            trace.record_rows(len(rows))
            return aggregator.build_leaderboard(
                (self.map_row(r) for r in rows), "field_rep", limit=REP_LEADERBOARD_SIZE
            )

        return await self._guarded("fetch_leaderboard_stats", list, _run)

    async def fetch_account_manager_leaderboard(self, date_range: Optional[DateRange] = None):
        async def _run(trace):
            def build():
                query = self._leads("Account_Manager, Status, Install_Booked_Date, Paid_Date") \
                    .not_.is_("Account_Manager", "null")
                if date_range is not None:
                    query = apply_date_window(query, "Created_At", date_range)
                return query

            rows = await fetch_all_pages(build, label="solar.solar_leads")
            trace.record_rows(len(rows))
            return aggregator.build_leaderboard((self.map_row(r) for r in rows), "account_manager")

        return await self._guarded("fetch_account_manager_leaderboard", list, _run)

    async def fetch_six_month_trend(self, now: Optional[datetime] = None):
        async def _run(trace):
            start = six_month_window_start(now)

            def since(column: str):
                return fetch_all_pages(
                    lambda: self._leads(column).gte(column, start.isoformat()),
                    label="solar.solar_leads",
                )

            # Events are bucketed by their own month, so each column is windowed separately
            leads, surveys, installs, paid = await asyncio.gather(
                since("Created_At"),
                since("Survey_Booked_Date"),
                since("Install_Booked_Date"),
                self._paid_since(start),
            )
            trace.record_rows(len(leads) + len(surveys) + len(installs) + len(paid))
            return trends.activity_trend(
                lead_dates=[r.get("Created_At") for r in leads],
                survey_dates=[r.get("Survey_Booked_Date") for r in surveys],
                install_dates=[r.get("Install_Booked_Date") for r in installs],
                paid_dates=[r.get("Paid_Date") for r in paid],
                now=now,
            )

        return await self._guarded(
            "fetch_six_month_trend",
            lambda: trends.activity_trend([], [], [], [], now=now),
            _run,
        )

    async def fetch_revenue_trend(self, now: Optional[datetime] = None):
        async def _run(trace):
            rows = await self._paid_since(six_month_window_start(now))
            trace.record_rows(len(rows))
            return trends.revenue_trend(
                ((r.get("Paid_Date"), r.get("Lead_Revenue")) for r in rows), now=now
            )

        return await self._guarded(
            "fetch_revenue_trend", lambda: trends.revenue_trend([], now=now), _run
        )

    async def fetch_lead_source_stats(self, date_range: DateRange):
        async def _run(trace):
            rows = await self._created_in("Lead_Source, Status", date_range)
            trace.record_rows(len(rows))
            return aggregator.lead_source_stats(
                lead_sources=[r.get("Lead_Source") for r in rows],
                paid_sources=[r.get("Lead_Source") for r in rows if r.get("Status") == PAID_STATUS],
            )

        return await self._guarded("fetch_lead_source_stats", list, _run)

    async def fetch_installer_performance(self, date_range: DateRange):
        async def _run(trace):
            rows = await self._created_in(FUNNEL_COLUMNS, date_range)
            trace.record_rows(len(rows))
            records = [self.map_row(r) for r in rows]
            return aggregator.installer_stats(
                lead_installers=[r.installer for r in records],
                survey_installers=[r.installer for r in records if r.survey_booked_date],
                install_installers=[r.installer for r in records if r.install_booked_date],
                paid_rows=[(r.installer, r.lead_revenue) for r in records if r.is_paid],
            )

        return await self._guarded("fetch_installer_performance", list, _run)

    async def fetch_financial_data(self, date_range: DateRange) -> FinancialData:
        async def _run(trace):
            expenses, cohort_rows, paid_rows = await asyncio.gather(
                self.ledger.fetch_expenses(date_range),
                self._created_in(FUNNEL_COLUMNS, date_range),
                self._paid_in("Lead_Revenue", date_range),
            )
            trace.record_rows(len(expenses) + len(cohort_rows) + len(paid_rows))

            revenue = aggregator.total_revenue(r.get("Lead_Revenue") for r in paid_rows)
            total_expenses = aggregator.sum_expenses(expenses)
            field_spend, online_spend = aggregator.allocate_channel_expenses(expenses)

            records = [self.map_row(r) for r in cohort_rows]
            field_leads = [r for r in records if r.lead_source == FIELD_CHANNEL]
            online_leads = [r for r in records if r.lead_source == ONLINE_CHANNEL]
            field_funnel = aggregator.cohort_funnel(field_leads)
            online_funnel = aggregator.cohort_funnel(online_leads)

            return FinancialData(
                summary=aggregator.financial_summary(revenue, total_expenses),
                field_metrics=aggregator.cost_per_metric(
                    field_spend, field_funnel.leads_count,
                    field_funnel.surveys_count, field_funnel.installs_count,
                ),
                online_metrics=aggregator.cost_per_metric(
                    online_spend, online_funnel.leads_count,
                    online_funnel.surveys_count, online_funnel.installs_count,
                ),
                expense_breakdown=aggregator.expense_breakdown(expenses),
                source_breakdown=[
                    aggregator.channel_breakdown(FIELD_CHANNEL, field_leads),
                    aggregator.channel_breakdown(ONLINE_CHANNEL, online_leads),
                ],
            )

        return await self._guarded("fetch_financial_data", FinancialData, _run)

    async def fetch_financial_trend(self, now: Optional[datetime] = None):
        async def _run(trace):
            start = six_month_window_start(now)
            paid_rows, expenses = await asyncio.gather(
                self._paid_since(start),
                self.ledger.fetch_expenses_since(start),
            )
            trace.record_rows(len(paid_rows) + len(expenses))
            return trends.financial_trend(
                paid_rows=((r.get("Paid_Date"), r.get("Lead_Revenue")) for r in paid_rows),
                expense_rows=((e.transaction_date, e.amount) for e in expenses),
                now=now,
            )

        return await self._guarded(
            "fetch_financial_trend", lambda: trends.financial_trend([], [], now=now), _run
        )
