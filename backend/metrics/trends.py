"""
Six-month bucketing.

The window is the current month plus the five before it. Output always has
exactly six entries, oldest first, zero-filled. Buckets are keyed by
(year, month) and labelled with the short month name, so a date whose
month name matches an in-window month from another year is dropped
instead of being folded into that bucket.
"""

from datetime import datetime
from typing import Any, Iterable, Optional

from date_ranges import MONTH_ABBR, add_months, local_now, parse_timestamp, LOCAL_TZ
from metrics.aggregator import parse_currency
from metrics.models import FinancialTrend, MonthlyActivity, RevenueTrendPoint

TREND_MONTHS = 6


def month_keys(now: Optional[datetime] = None) -> list[tuple[int, int]]:
    today = (now or local_now()).astimezone(LOCAL_TZ).date()
    first = add_months(today, -(TREND_MONTHS - 1))
    keys = []
    for i in range(TREND_MONTHS):
        d = add_months(first, i)
        keys.append((d.year, d.month))
    return keys


def month_label(key: tuple[int, int]) -> str:
    return MONTH_ABBR[key[1] - 1]


def bucket_key(value: Any) -> Optional[tuple[int, int]]:
    dt = parse_timestamp(value)
    return (dt.year, dt.month) if dt else None


def _tally(counts: dict, dates: Iterable[Any]) -> None:
    for value in dates:
        key = bucket_key(value)
        if key in counts:
            counts[key] += 1


def activity_trend(
    lead_dates: Iterable[Any],
    survey_dates: Iterable[Any],
    install_dates: Iterable[Any],
    paid_dates: Iterable[Any],
    now: Optional[datetime] = None,
) -> list[MonthlyActivity]:
    """Each stream lands in the month of its own event date."""
    keys = month_keys(now)
    streams = {
        "leads": lead_dates,
        "surveys": survey_dates,
        "installs": install_dates,
        "paid": paid_dates,
    }
    counts = {}
    for name, dates in streams.items():
        counts[name] = dict.fromkeys(keys, 0)
        _tally(counts[name], dates)

    return [
        MonthlyActivity(
            month=month_label(k),
            leads=counts["leads"][k],
            surveys=counts["surveys"][k],
            installs=counts["installs"][k],
            paid=counts["paid"][k],
        )
        for k in keys
    ]


def _sum_by_month(keys, rows: Iterable[tuple[Any, Any]]) -> dict:
    totals = dict.fromkeys(keys, 0.0)
    for when, amount in rows:
        key = bucket_key(when)
        if key in totals:
            totals[key] += parse_currency(amount)
    return totals


def revenue_trend(
    paid_rows: Iterable[tuple[Any, Any]],
    now: Optional[datetime] = None,
) -> list[RevenueTrendPoint]:
    """`paid_rows` yields (paid_date, amount) pairs."""
    keys = month_keys(now)
    totals = _sum_by_month(keys, paid_rows)
    return [RevenueTrendPoint(month=month_label(k), revenue=totals[k]) for k in keys]


def financial_trend(
    paid_rows: Iterable[tuple[Any, Any]],
    expense_rows: Iterable[tuple[Any, Any]],
    now: Optional[datetime] = None,
) -> list[FinancialTrend]:
    keys = month_keys(now)
    revenue = _sum_by_month(keys, paid_rows)
    expenses = _sum_by_month(keys, expense_rows)
    return [
        FinancialTrend(
            month=month_label(k),
            revenue=revenue[k],
            expenses=expenses[k],
            net_profit=revenue[k] - expenses[k],
        )
        for k in keys
    ]
