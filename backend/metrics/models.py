"""
Shared value objects for the metrics layer.

Sources map their native rows into LeadRecord; the aggregator reduces
LeadRecords (or pre-counted rows) into the summary shapes below. All of
them are recomputed per request and carry no back-references.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

PAID_STATUS = "Paid"


class UserProfile(BaseModel):
    """Row from finances.users, read-only to this service."""
    id: str
    email: str
    name: Optional[str] = None
    role: str                # 'field_rep' | 'account_manager' | 'admin'


class LeadRecord(BaseModel):
    """Canonical lead/deal shape shared by every source."""
    id: str
    created_at: Optional[datetime] = None
    customer_name: Optional[str] = None
    customer_tel: Optional[str] = None
    customer_email: Optional[str] = None
    address: Optional[str] = None
    postcode: Optional[str] = None
    property_type: Optional[str] = None
    lead_source: Optional[str] = None
    field_rep: Optional[str] = None
    account_manager: Optional[str] = None
    installer: Optional[str] = None
    status: Optional[str] = None
    survey_booked_date: Optional[datetime] = None
    survey_complete_date: Optional[datetime] = None
    install_booked_date: Optional[datetime] = None
    paid_date: Optional[datetime] = None
    lead_cost: Optional[float] = None
    lead_revenue: Optional[float] = None
    commission_amount: Optional[float] = None
    commission_paid: Optional[str] = None    # "Yes" | "No"
    commission_paid_date: Optional[datetime] = None

    @property
    def is_paid(self) -> bool:
        return self.status == PAID_STATUS


class KPIBundle(BaseModel):
    leads_count: int = 0
    surveys_count: int = 0
    installs_count: int = 0
    paid_count: int = 0
    revenue: float = 0.0


class LeaderboardEntry(BaseModel):
    name: str
    leads: int = 0
    installs: int = 0
    paid: int = 0
    conversion: float = 0.0


class MonthlyActivity(BaseModel):
    month: str
    leads: int = 0
    surveys: int = 0
    installs: int = 0
    paid: int = 0


class RevenueTrendPoint(BaseModel):
    month: str
    revenue: float = 0.0


class LeadSourceStat(BaseModel):
    source: str
    count: int = 0
    percentage: float = 0.0
    conversion: float = 0.0


class InstallerStat(BaseModel):
    name: str
    leads: int = 0
    surveys: int = 0
    installs: int = 0
    paid: int = 0
    revenue: float = 0.0
    lead_to_paid_rate: float = 0.0
    avg_revenue_per_lead: float = 0.0
    lead_to_survey_rate: float = 0.0
    survey_to_install_rate: float = 0.0
    install_to_paid_rate: float = 0.0


class Expense(BaseModel):
    """Row from the shared finances.expenses ledger."""
    id: Optional[str] = None
    transaction_date: Optional[datetime] = None
    amount: float = 0.0
    expense_type: Optional[str] = None   # Field | Online | Split | Salaries | Software | Other
    description: Optional[str] = None


class FinancialSummary(BaseModel):
    revenue: float = 0.0
    expenses: float = 0.0
    net_profit: float = 0.0
    margin: float = 0.0


class CostPerMetric(BaseModel):
    cpl: float = 0.0
    cps: float = 0.0
    cpi: float = 0.0


class ExpenseBreakdownItem(BaseModel):
    type: str
    amount: float = 0.0
    percentage: float = 0.0


class SourceBreakdownItem(BaseModel):
    source: str
    leads: int = 0
    paid: int = 0
    revenue: float = 0.0
    conversion: float = 0.0


class FinancialData(BaseModel):
    summary: FinancialSummary = Field(default_factory=FinancialSummary)
    field_metrics: CostPerMetric = Field(default_factory=CostPerMetric)
    online_metrics: CostPerMetric = Field(default_factory=CostPerMetric)
    expense_breakdown: list[ExpenseBreakdownItem] = Field(default_factory=list)
    source_breakdown: list[SourceBreakdownItem] = Field(default_factory=list)


class FinancialTrend(BaseModel):
    month: str
    revenue: float = 0.0
    expenses: float = 0.0
    net_profit: float = 0.0


class SurveyVolumePoint(BaseModel):
    month: str
    count: int = 0


class RepConversionMetrics(BaseModel):
    """Figures a rep/manager view derives from its own fetched leads."""
    leads: int = 0
    surveys: int = 0
    installs: int = 0
    paid: int = 0
    total_commission: float = 0.0
    lead_to_survey_rate: float = 0.0
    survey_to_install_rate: float = 0.0
