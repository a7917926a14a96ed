"""
Dashboard views: the calling contract between HTTP handlers and sources.

Every view loader:
  1. resolves the FilterState into a DateRange,
  2. issues all of its source fetches concurrently,
  3. returns only after every fetch has settled (no partial views).

DashboardSession adds the stale-response guard on top: each load is tagged
with the FilterState it was issued for, and a result whose tag no longer
matches the active state is dropped instead of published.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from access_policy import Role
from business_line import BusinessLine
from date_ranges import DateRange, Period, resolve
from metrics import aggregator
from metrics.models import UserProfile
from sources.base import MetricsSource

logger = logging.getLogger(__name__)

RECENT_LEADS_LIMIT = 10
MANAGER_PREVIEW_SIZE = 5


@dataclass(frozen=True)
class FilterState:
    """Everything a view's data depends on besides the user."""
    business_line: str = BusinessLine.DEFAULT
    period: str = Period.THIS_YEAR
    custom_start: Optional[str] = None
    custom_end: Optional[str] = None
    target_name: Optional[str] = None

    @classmethod
    def for_business_line(cls, business_line: str, **overrides) -> "FilterState":
        """Initial state for a line, opening on that line's default period."""
        overrides.setdefault("period", BusinessLine.default_period(business_line))
        return cls(business_line=business_line, **overrides)

    def date_range(self, now: Optional[datetime] = None) -> DateRange:
        return resolve(self.period, self.custom_start, self.custom_end, now=now)


class DashboardSession:
    """
    Holds the active FilterState and the last published result per view.

    Switching business line resets the period to that line's default and
    clears the rep target; other changes keep the rest of the state.
    """

    def __init__(self, state: Optional[FilterState] = None):
        self._state = state or FilterState()
        self._published: dict[str, Any] = {}

    @property
    def state(self) -> FilterState:
        return self._state

    def update(self, **changes) -> FilterState:
        line = changes.get("business_line")
        if line is not None and line != self._state.business_line:
            if not BusinessLine.is_valid(line):
                raise ValueError(f"Unknown business line: {line}")
            changes.setdefault("period", BusinessLine.default_period(line))
            changes.setdefault("target_name", None)
        period = changes.get("period")
        if period is not None and not Period.is_valid(period):
            raise ValueError(f"Unknown period: {period}")
        self._state = replace(self._state, **changes)
        return self._state

    def published(self, view: str) -> Any:
        return self._published.get(view)

    async def load(
        self,
        view: str,
        loader: Callable[[FilterState], Awaitable[Any]],
    ) -> Optional[Any]:
        """
        Run `loader` for the current state and publish its result.

        Returns None (and publishes nothing) if the state changed while the
        load was in flight.
        """
        issued = self._state
        result = await loader(issued)
        if issued != self._state:
            logger.info(f"Discarding stale '{view}' result issued for {issued}")
            return None
        self._published[view] = result
        return result


# ---------------------------------------------------------------------------
# View loaders
# ---------------------------------------------------------------------------

def _rep_target(user: UserProfile, state: FilterState) -> Optional[str]:
    # Only admins may narrow by rep name; other roles are scoped by the policy
    return state.target_name if user.role == Role.ADMIN else None


async def load_field_rep_view(
    source: MetricsSource,
    user: UserProfile,
    state: FilterState,
    now: Optional[datetime] = None,
) -> dict:
    date_range = state.date_range(now)
    target = _rep_target(user, state)

    leads, kpis, leaderboard = await asyncio.gather(
        source.fetch_leads(user, date_range, target),
        source.fetch_kpi_metrics(user, date_range, target),
        source.fetch_leaderboard_stats(),
    )

    return {
        "kpis": kpis,
        "leaderboard": leaderboard,
        "metrics": aggregator.rep_conversion_metrics(leads, commission_paid_only=True),
        "survey_volume": aggregator.survey_volume(leads),
        "recent_leads": leads[:RECENT_LEADS_LIMIT],
        "leads": leads,
    }


async def load_account_manager_view(
    source: MetricsSource,
    user: UserProfile,
    state: FilterState,
    now: Optional[datetime] = None,
) -> dict:
    date_range = state.date_range(now)

    leads, leaderboard = await asyncio.gather(
        source.fetch_leads(user, date_range, _rep_target(user, state)),
        source.fetch_account_manager_leaderboard(date_range),
    )

    return {
        "leaderboard": leaderboard,
        "metrics": aggregator.rep_conversion_metrics(leads, commission_paid_only=False),
        "recent_leads": leads[:RECENT_LEADS_LIMIT],
        "leads": leads,
    }


async def load_company_kpis_view(
    source: MetricsSource,
    user: UserProfile,
    state: FilterState,
    now: Optional[datetime] = None,
) -> dict:
    date_range = state.date_range(now)

    kpis, trend, revenue_trend, rep_board, manager_board, sources = await asyncio.gather(
        source.fetch_kpi_metrics(user, date_range),
        source.fetch_six_month_trend(now),
        source.fetch_revenue_trend(now),
        source.fetch_leaderboard_stats(),
        source.fetch_account_manager_leaderboard(date_range),
        source.fetch_lead_source_stats(date_range),
    )

    return {
        "kpis": kpis,
        "funnel": aggregator.funnel_rates(kpis),
        "trend": trend,
        "revenue_trend": revenue_trend,
        "leaderboard": rep_board,
        "account_managers": manager_board[:MANAGER_PREVIEW_SIZE],
        "lead_sources": sources,
    }


async def load_financials_view(
    source: MetricsSource,
    user: UserProfile,
    state: FilterState,
    now: Optional[datetime] = None,
) -> dict:
    data, trend = await asyncio.gather(
        source.fetch_financial_data(state.date_range(now)),
        source.fetch_financial_trend(now),
    )
    return {"financials": data, "trend": trend}


async def load_installers_view(
    source: MetricsSource,
    user: UserProfile,
    state: FilterState,
    now: Optional[datetime] = None,
) -> dict:
    installers = await source.fetch_installer_performance(state.date_range(now))
    return {"installers": installers}


VIEW_LOADERS = {
    "field-rep": load_field_rep_view,
    "account-manager": load_account_manager_view,
    "company-kpis": load_company_kpis_view,
    "financials": load_financials_view,
    "installers": load_installers_view,
}

ADMIN_VIEWS = frozenset({"company-kpis", "financials", "installers"})
