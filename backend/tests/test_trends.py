"""
Six-Month Trend Tests
=====================
Verifies that:
1. Exactly six buckets, oldest first, labelled by short month name.
2. Months with no records are present and zero-filled.
3. Each stream is bucketed by its own date.
4. A same-named month from another year is not folded into the window.
"""

import sys
import os
from datetime import datetime

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from date_ranges import LOCAL_TZ
from metrics import trends

JULY_15 = datetime(2025, 7, 15, 10, tzinfo=LOCAL_TZ)
JAN_10 = datetime(2025, 1, 10, tzinfo=LOCAL_TZ)


class TestBuckets:

    def test_july_window_is_feb_to_jul(self):
        points = trends.activity_trend([], [], [], [], now=JULY_15)
        assert [p.month for p in points] == ["Feb", "Mar", "Apr", "May", "Jun", "Jul"]
        assert all(p.leads == p.surveys == p.installs == p.paid == 0 for p in points)

    def test_window_crossing_year_end(self):
        labels = [p.month for p in trends.revenue_trend([], now=JAN_10)]
        assert labels == ["Aug", "Sep", "Oct", "Nov", "Dec", "Jan"]

    def test_month_keys_carry_year(self):
        assert trends.month_keys(JAN_10)[0] == (2024, 8)
        assert trends.month_keys(JAN_10)[-1] == (2025, 1)


class TestActivity:

    def test_each_stream_uses_its_own_date(self):
        points = trends.activity_trend(
            lead_dates=["2025-03-02", "2025-03-28T23:30:00"],
            survey_dates=["2025-04-01"],
            install_dates=["2025-05-15", None],
            paid_dates=["2025-07-01T09:00:00Z"],
            now=JULY_15,
        )
        by_month = {p.month: p for p in points}
        assert by_month["Mar"].leads == 2
        assert by_month["Apr"].surveys == 1
        assert by_month["May"].installs == 1
        assert by_month["Jul"].paid == 1

    def test_out_of_window_same_month_name_excluded(self):
        points = trends.activity_trend(["2024-03-10", "2025-03-10"], [], [], [], now=JULY_15)
        assert {p.month: p.leads for p in points}["Mar"] == 1

    def test_unparsable_dates_ignored(self):
        points = trends.activity_trend(["garbage", ""], [], [], [], now=JULY_15)
        assert sum(p.leads for p in points) == 0


class TestMoney:

    def test_revenue_trend_sums_currency(self):
        points = trends.revenue_trend(
            [("2025-06-03", "£1,000.00"), ("2025-06-20", 500), ("2025-02-01", None)],
            now=JULY_15,
        )
        by_month = {p.month: p.revenue for p in points}
        assert by_month["Jun"] == 1500.0
        assert by_month["Feb"] == 0.0

    def test_financial_trend_net_profit(self):
        points = trends.financial_trend(
            paid_rows=[("2025-05-10", 4000)],
            expense_rows=[(datetime(2025, 5, 2, tzinfo=LOCAL_TZ), 1500.0), ("2025-07-01", 200)],
            now=JULY_15,
        )
        may = next(p for p in points if p.month == "May")
        jul = next(p for p in points if p.month == "Jul")
        assert (may.revenue, may.expenses, may.net_profit) == (4000.0, 1500.0, 2500.0)
        assert jul.net_profit == -200.0
