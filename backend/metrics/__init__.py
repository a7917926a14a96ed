# Metrics package: canonical value objects, shared aggregation math and
# six-month bucketing. Nothing in here performs I/O.

from .models import (  # noqa: F401
    PAID_STATUS,
    CostPerMetric,
    Expense,
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
