"""
Metrics Aggregator
==================
Pure functions over already-fetched canonical records or pre-counted rows.
No I/O, no clock reads: the same frozen input always yields the same output.

Clamp policy (rate → min(max(rate, 0), 100)) per metric:
  leaderboard conversion       : not clamped (paid ⊆ leads by construction)
  lead-source conversion       : clamped
  installer stage rates        : clamped
  company funnel rates         : clamped (event counts can outrun cohorts)
  channel source-breakdown conv: clamped
  rep/manager view rates       : not clamped (cohort of one fetch)
"""

import math
import re
from typing import Any, Iterable, Optional

from date_ranges import MONTH_ABBR
from metrics.models import (
    CostPerMetric,
    Expense,
    ExpenseBreakdownItem,
    FinancialSummary,
    InstallerStat,
    KPIBundle,
    LeadRecord,
    LeadSourceStat,
    LeaderboardEntry,
    RepConversionMetrics,
    SourceBreakdownItem,
    SurveyVolumePoint,
)

EXPENSE_TYPES = ("Field", "Online", "Split", "Salaries", "Software", "Other")

FIELD_CHANNEL = "Field Rep"
ONLINE_CHANNEL = "Online Ads"

UNKNOWN_SOURCE = "Unknown"
UNASSIGNED_INSTALLER = "Unassigned"

# Currency symbols, thousands separators, stray mojibake from '£' in latin-1
_CURRENCY_NOISE = re.compile(r"[£Â$€,\s]")


# ---------------------------------------------------------------------------
# Money and rates
# ---------------------------------------------------------------------------

def parse_currency(value: Any) -> float:
    """'£1,234.50' and 1234.5 both → 1234.5. Missing or unparsable → 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        parsed = float(value)
    else:
        cleaned = _CURRENCY_NOISE.sub("", str(value))
        if not cleaned:
            return 0.0
        try:
            parsed = float(cleaned)
        except ValueError:
            return 0.0
    # "NaN" and "inf" parse as floats but are not amounts
    return parsed if math.isfinite(parsed) else 0.0


def optional_currency(value: Any) -> Optional[float]:
    """Like parse_currency, but a missing value stays None."""
    if value is None or value == "":
        return None
    return parse_currency(value)


def safe_divide(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def clamp_rate(rate: float) -> float:
    return min(max(rate, 0.0), 100.0)


def conversion_rate(numerator: float, denominator: float, clamp: bool = False) -> float:
    rate = safe_divide(numerator, denominator) * 100
    return clamp_rate(rate) if clamp else rate


def normalize_label(value: Any, fallback: str) -> str:
    text = str(value).strip() if value is not None else ""
    return text or fallback


# ---------------------------------------------------------------------------
# Funnel counts
# ---------------------------------------------------------------------------

def cohort_funnel(records: Iterable[LeadRecord]) -> KPIBundle:
    """Every count taken over the same set of records (creation cohort)."""
    bundle = KPIBundle()
    for r in records:
        bundle.leads_count += 1
        if r.survey_booked_date is not None:
            bundle.surveys_count += 1
        if r.install_booked_date is not None:
            bundle.installs_count += 1
        if r.is_paid:
            bundle.paid_count += 1
            bundle.revenue += r.lead_revenue or 0.0
    return bundle


def total_revenue(amounts: Iterable[Any]) -> float:
    return sum((parse_currency(a) for a in amounts), 0.0)


def funnel_rates(kpis: KPIBundle) -> dict:
    """Stage-to-stage rates for the company overview."""
    return {
        "lead_to_survey": conversion_rate(kpis.surveys_count, kpis.leads_count, clamp=True),
        "survey_to_install": conversion_rate(kpis.installs_count, kpis.surveys_count, clamp=True),
        "install_to_paid": conversion_rate(kpis.paid_count, kpis.installs_count, clamp=True),
    }


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------

def build_leaderboard(
    records: Iterable[LeadRecord],
    attribute: str,
    limit: Optional[int] = None,
) -> list[LeaderboardEntry]:
    """
    Group records by a person attribute ('field_rep' / 'account_manager').

    Records without a name are skipped. Sorted by paid descending; ties
    keep first-appearance order.
    """
    stats: dict[str, LeaderboardEntry] = {}
    for r in records:
        name = getattr(r, attribute, None)
        if not name:
            continue
        entry = stats.get(name)
        if entry is None:
            entry = stats[name] = LeaderboardEntry(name=name)
        entry.leads += 1
        if r.install_booked_date is not None:
            entry.installs += 1
        if r.is_paid:
            entry.paid += 1

    for entry in stats.values():
        entry.conversion = conversion_rate(entry.paid, entry.leads)

    board = sorted(stats.values(), key=lambda e: e.paid, reverse=True)
    return board[:limit] if limit is not None else board


# ---------------------------------------------------------------------------
# Lead sources
# ---------------------------------------------------------------------------

def lead_source_stats(
    lead_sources: Iterable[Any],
    paid_sources: Iterable[Any],
) -> list[LeadSourceStat]:
    """
    Args:
        lead_sources: source label of every record in range (the volume).
        paid_sources: source label of every paid record counted for the range.

    Percentage is share of total volume; conversion is paid / volume of the
    same source, never relative to the grand total.
    """
    counts: dict[str, list[int]] = {}
    total = 0
    for raw in lead_sources:
        source = normalize_label(raw, UNKNOWN_SOURCE)
        counts.setdefault(source, [0, 0])[0] += 1
        total += 1
    for raw in paid_sources:
        source = normalize_label(raw, UNKNOWN_SOURCE)
        counts.setdefault(source, [0, 0])[1] += 1

    stats = [
        LeadSourceStat(
            source=source,
            count=count,
            percentage=conversion_rate(count, total),
            conversion=conversion_rate(paid, count, clamp=True),
        )
        for source, (count, paid) in counts.items()
    ]
    return sorted(stats, key=lambda s: s.count, reverse=True)


# ---------------------------------------------------------------------------
# Installers
# ---------------------------------------------------------------------------

def installer_stats(
    lead_installers: Iterable[Any],
    survey_installers: Iterable[Any],
    install_installers: Iterable[Any],
    paid_rows: Iterable[tuple[Any, Any]],
) -> list[InstallerStat]:
    """
    Per-installer funnel from four independent streams of installer labels.
    `paid_rows` yields (installer, revenue) pairs. Each rate uses its own
    denominator and is clamped to [0, 100]. Sorted by revenue descending.
    """
    stats: dict[str, InstallerStat] = {}

    def _stat(raw) -> InstallerStat:
        name = normalize_label(raw, UNASSIGNED_INSTALLER)
        if name not in stats:
            stats[name] = InstallerStat(name=name)
        return stats[name]

    for raw in lead_installers:
        _stat(raw).leads += 1
    for raw in survey_installers:
        _stat(raw).surveys += 1
    for raw in install_installers:
        _stat(raw).installs += 1
    for raw, revenue in paid_rows:
        s = _stat(raw)
        s.paid += 1
        s.revenue += parse_currency(revenue)

    for s in stats.values():
        s.lead_to_paid_rate = conversion_rate(s.paid, s.leads, clamp=True)
        s.avg_revenue_per_lead = safe_divide(s.revenue, s.leads)
        s.lead_to_survey_rate = conversion_rate(s.surveys, s.leads, clamp=True)
        s.survey_to_install_rate = conversion_rate(s.installs, s.surveys, clamp=True)
        s.install_to_paid_rate = conversion_rate(s.paid, s.installs, clamp=True)

    return sorted(stats.values(), key=lambda s: s.revenue, reverse=True)


# ---------------------------------------------------------------------------
# Financials
# ---------------------------------------------------------------------------

def sum_expenses(expenses: Iterable[Expense], expense_type: Optional[str] = None) -> float:
    return sum(
        (e.amount for e in expenses if expense_type is None or e.expense_type == expense_type),
        0.0,
    )


def financial_summary(revenue: float, expenses: float) -> FinancialSummary:
    net = revenue - expenses
    return FinancialSummary(
        revenue=revenue,
        expenses=expenses,
        net_profit=net,
        margin=safe_divide(net, revenue) * 100,
    )


def allocate_channel_expenses(expenses: list[Expense]) -> tuple[float, float]:
    """(field, online) spend: direct spend plus half of every Split expense."""
    split = sum_expenses(expenses, "Split")
    field = sum_expenses(expenses, "Field") + split / 2
    online = sum_expenses(expenses, "Online") + split / 2
    return field, online


def cost_per_metric(spend: float, leads: int, surveys: int, installs: int) -> CostPerMetric:
    return CostPerMetric(
        cpl=safe_divide(spend, leads),
        cps=safe_divide(spend, surveys),
        cpi=safe_divide(spend, installs),
    )


def expense_breakdown(expenses: list[Expense]) -> list[ExpenseBreakdownItem]:
    """One row per fixed category, largest first."""
    total = sum_expenses(expenses)
    items = []
    for expense_type in EXPENSE_TYPES:
        amount = sum_expenses(expenses, expense_type)
        items.append(ExpenseBreakdownItem(
            type=expense_type,
            amount=amount,
            percentage=conversion_rate(amount, total),
        ))
    return sorted(items, key=lambda i: i.amount, reverse=True)


def channel_breakdown(source: str, records: list[LeadRecord]) -> SourceBreakdownItem:
    """Cohort revenue/conversion for one channel's records."""
    funnel = cohort_funnel(records)
    return SourceBreakdownItem(
        source=source,
        leads=funnel.leads_count,
        paid=funnel.paid_count,
        revenue=funnel.revenue,
        conversion=conversion_rate(funnel.paid_count, funnel.leads_count, clamp=True),
    )


# ---------------------------------------------------------------------------
# Rep / manager views
# ---------------------------------------------------------------------------

def rep_conversion_metrics(
    records: list[LeadRecord],
    commission_paid_only: bool = True,
) -> RepConversionMetrics:
    """
    Field-rep views count only commission marked paid ("Yes");
    account-manager views sum every commission amount.
    """
    funnel = cohort_funnel(records)
    commission = sum(
        (r.commission_amount or 0.0 for r in records
         if not commission_paid_only or r.commission_paid == "Yes"),
        0.0,
    )
    return RepConversionMetrics(
        leads=funnel.leads_count,
        surveys=funnel.surveys_count,
        installs=funnel.installs_count,
        paid=funnel.paid_count,
        total_commission=commission,
        lead_to_survey_rate=conversion_rate(funnel.surveys_count, funnel.leads_count),
        survey_to_install_rate=conversion_rate(funnel.installs_count, funnel.surveys_count),
    )


def survey_volume(records: Iterable[LeadRecord]) -> list[SurveyVolumePoint]:
    """Surveys booked per month name, calendar order Jan → Dec."""
    counts: dict[str, int] = {}
    for r in records:
        if r.survey_booked_date is not None:
            key = MONTH_ABBR[r.survey_booked_date.month - 1]
            counts[key] = counts.get(key, 0) + 1
    return [
        SurveyVolumePoint(month=m, count=counts[m])
        for m in MONTH_ABBR if m in counts
    ]
